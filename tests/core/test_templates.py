from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from deployguard_core.errors import ValidationError
from deployguard_core.templates import (
    Template,
    config_from_template,
    find_template,
    load_templates,
    save_template,
)
from deployguard_core.templates.store import parse_template, template_slug

AVAILABLE_AT = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_load_json_and_yaml_templates(tmp_path):
    (tmp_path / "a_required.json").write_text(
        json.dumps(
            {
                "name": "Patch Tuesday",
                "purpose": "required",
                "notification_policy": "display_software_center_only",
                "reboot_outside_service_window": True,
                "default_deadline_offset_hours": 48,
            }
        ),
        encoding="utf-8",
    )
    (tmp_path / "b_available.yaml").write_text(
        "name: Self Service\npurpose: available\nallow_metered_connection: yes\n",
        encoding="utf-8",
    )
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    templates = load_templates(tmp_path.as_posix())
    assert [template.name for template in templates] == [
        "Patch Tuesday",
        "Self Service",
    ]
    patch = templates[0]
    assert patch.reboot_outside_service_window is True
    assert patch.default_deadline_offset_hours == 48
    assert templates[1].allow_metered_connection is True
    assert templates[1].notification_policy == "display_all"


@pytest.mark.core
def test_malformed_templates_are_skipped(tmp_path, caplog):
    (tmp_path / "broken.json").write_text("{", encoding="utf-8")
    (tmp_path / "bad_purpose.yml").write_text(
        "name: Odd\npurpose: mandatory\n", encoding="utf-8"
    )
    (tmp_path / "list.yaml").write_text("- a\n- b\n", encoding="utf-8")
    (tmp_path / "ok.json").write_text(
        json.dumps({"name": "Fine", "purpose": "available"}), encoding="utf-8"
    )
    templates = load_templates(tmp_path.as_posix())
    assert [template.name for template in templates] == ["Fine"]
    assert "Skipping malformed template" in caplog.text


def test_missing_template_dir_is_empty(tmp_path):
    assert load_templates((tmp_path / "none").as_posix()) == []


def test_save_and_reload_template(tmp_path):
    directory = (tmp_path / "templates").as_posix()
    template = Template(
        name="Pilot Ring",
        purpose="required",
        notification_policy="hide_all",
        override_service_window=True,
        default_deadline_offset_hours=4,
    )
    uri = save_template(directory, template)
    assert uri.endswith("pilot-ring.json")
    loaded = load_templates(directory)
    assert loaded == [template]
    assert find_template(loaded, " pilot ring ") == template
    assert find_template(loaded, "other") is None


def test_save_rejects_invalid_template(tmp_path):
    with pytest.raises(ValidationError):
        save_template(tmp_path.as_posix(), Template(name="X", purpose="soon"))
    with pytest.raises(ValidationError):
        save_template(
            tmp_path.as_posix(),
            Template(name="X", purpose="required", default_deadline_offset_hours=-1),
        )
    with pytest.raises(ValidationError, match="fractional"):
        save_template(
            tmp_path.as_posix(),
            Template(name="X", purpose="required", default_deadline_offset_hours=1.5),
        )
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize(
    "text,expected",
    [
        ("name: A\npurpose: required\ndefault_deadline_offset_hours: 2.0\n", 2),
        ("name: A\npurpose: required\ndefault_deadline_offset_hours: '3'\n", 3),
    ],
)
def test_whole_number_offsets_are_accepted(text, expected):
    template = parse_template(text, suffix=".yaml")
    assert template.default_deadline_offset_hours == expected


@pytest.mark.parametrize("offset", [1.5, 0.25, "1.5"])
def test_fractional_offset_is_rejected(offset):
    payload = {
        "name": "Half",
        "purpose": "required",
        "default_deadline_offset_hours": offset,
    }
    with pytest.raises(ValidationError):
        parse_template(json.dumps(payload))


def test_config_from_required_template():
    template = Template(
        name="Patch",
        purpose="required",
        allow_metered_connection=True,
        default_deadline_offset_hours=48,
    )
    config = config_from_template(template, available_at=AVAILABLE_AT, comment="w1")
    assert config.deadline_at == AVAILABLE_AT + timedelta(hours=48)
    assert config.allow_metered_connection is True
    assert config.comment == "w1"

    explicit = AVAILABLE_AT + timedelta(hours=2)
    config = config_from_template(
        template, available_at=AVAILABLE_AT, deadline_at=explicit
    )
    assert config.deadline_at == explicit


def test_config_from_available_template_has_no_deadline():
    template = Template(name="Self", purpose="available")
    config = config_from_template(
        template,
        available_at=AVAILABLE_AT,
        deadline_at=AVAILABLE_AT + timedelta(hours=2),
    )
    assert config.deadline_at is None
    assert config.effective_deadline is None


def test_parse_template_and_slug():
    template = parse_template("name: A\npurpose: available\n", suffix=".yml")
    assert template.purpose == "available"
    with pytest.raises(ValidationError):
        parse_template(json.dumps({"purpose": "available"}))
    assert template_slug("Patch Tuesday / Ring 1") == "patch-tuesday-ring-1"
    assert template_slug("***") == "template"
