from deployguard_core.templates.store import (
    Template,
    config_from_template,
    find_template,
    load_templates,
    save_template,
)

__all__ = [
    "Template",
    "config_from_template",
    "find_template",
    "load_templates",
    "save_template",
]
