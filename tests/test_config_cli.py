import json
import re

import pytest
import yaml

from slidebind.cli import main, parse_arguments
from slidebind.config import DEFAULT_SETTINGS, Config, load_data_file, merge_dicts


def test_from_dict_applies_defaults(tmp_path):
    config = Config.from_dict(
        {"paths": {"project_root": ".", "template": "t.pptx", "data": "d.json"}}, tmp_path
    )

    assert config.template_path == tmp_path.resolve() / "t.pptx"
    assert config.hide_mode == "remove"
    assert config.normalize_quotes is True
    assert config.remove_template_slides is True
    assert config.assets_dir is None
    assert DEFAULT_SETTINGS["generation"]["hide_mode"] == "remove"


def test_settings_override_and_path_override(tmp_path):
    config = Config.from_dict(
        {
            "paths": {"project_root": ".", "template": "t.pptx"},
            "settings": {"generation": {"hide_mode": "blank", "normalize_quotes": False}},
        },
        tmp_path,
    )
    config.set_path("template", str(tmp_path / "other.pptx"))
    config.set_path("data", None)

    assert config.hide_mode == "blank"
    assert config.normalize_quotes is False
    assert config.get("settings.logging.level") == "INFO"
    assert config.template_path == (tmp_path / "other.pptx").resolve()
    with pytest.raises(ValueError):
        config.get_path("data")


def test_invalid_hide_mode_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        Config.from_dict({"settings": {"generation": {"hide_mode": "shrink"}}}, tmp_path)


def test_validate_paths_lists_missing_files(tmp_path):
    config = Config.from_dict({"paths": {"project_root": ".", "template": "t.pptx"}}, tmp_path)

    with pytest.raises(FileNotFoundError) as excinfo:
        config.validate_paths()

    assert "template" in str(excinfo.value)
    assert "data: not configured" in str(excinfo.value)


def test_merge_dicts_is_recursive():
    merged = merge_dicts({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})

    assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


def test_load_data_file_json_and_yaml(tmp_path):
    json_path = tmp_path / "data.json"
    json_path.write_text(json.dumps({"Items": [1, 2]}), encoding="utf-8")
    yaml_path = tmp_path / "data.yaml"
    yaml_path.write_text("Items:\n  - 1\n  - 2\n", encoding="utf-8")
    empty_path = tmp_path / "empty.yaml"
    empty_path.write_text("", encoding="utf-8")

    assert load_data_file(json_path) == {"Items": [1, 2]}
    assert load_data_file(yaml_path) == {"Items": [1, 2]}
    assert load_data_file(empty_path) == {}


def test_load_data_file_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_data_file(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_data_file(broken)


def test_parse_arguments_modes_are_exclusive():
    args = parse_arguments(["--plan-only", "--data", "d.json"])
    assert args.plan_only and not args.inspect
    assert args.data == "d.json"

    with pytest.raises(SystemExit):
        parse_arguments(["--plan-only", "--inspect"])


def test_main_missing_config_returns_error(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "nope.yaml")]) == 1
    assert "Error" in capsys.readouterr().out


def _write_project(tmp_path, products):
    pytest.importorskip("pptx")
    from conftest import write_template

    write_template(
        tmp_path / "template.pptx",
        [{"texts": ["${Products[0].Name}", "${Products[1].Name}"]}],
    )
    (tmp_path / "data.json").write_text(json.dumps(products), encoding="utf-8")
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "paths": {
                    "project_root": ".",
                    "template": "template.pptx",
                    "data": "data.json",
                    "output": "out/deck.pptx",
                }
            }
        ),
        encoding="utf-8",
    )
    return config_path


def test_main_plan_only(tmp_path, products, capsys):
    config_path = _write_project(tmp_path, products)

    assert main(["--config", str(config_path), "--plan-only"]) == 0

    out = capsys.readouterr().out
    assert "slidebind Presentation Generator" in out
    plan_lines = [line for line in out.splitlines() if re.match(r"^\d+: \d+#\d+$", line)]
    assert [line.rsplit("#", 1)[1] for line in plan_lines] == ["0", "2", "4"]
    assert not (tmp_path / "out" / "deck.pptx").exists()


def test_main_inspect(tmp_path, products, capsys):
    config_path = _write_project(tmp_path, products)

    assert main(["--config", str(config_path), "--inspect"]) == 0

    out = capsys.readouterr().out
    assert "Collection:      Products" in out
    assert "Items per slide: 2" in out


def test_main_generates_output(tmp_path, products, capsys):
    config_path = _write_project(tmp_path, products)

    assert main(["--config", str(config_path)]) == 0

    assert (tmp_path / "out" / "deck.pptx").exists()
    assert "3 slide(s) written" in capsys.readouterr().out


def test_main_missing_template_returns_error(tmp_path, capsys):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump({"paths": {"project_root": ".", "template": "t.pptx", "data": "d.json"}}),
        encoding="utf-8",
    )

    assert main(["--config", str(config_path), "--plan-only"]) == 1
