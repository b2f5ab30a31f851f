from __future__ import annotations

import json
from pathlib import Path

import pytest

import main as cli


CREDENTIAL_ENV = (
    "KWRDS_API_KEY",
    "PERPLEXITY_API_KEY",
    "VALUER_API_URL",
    "IMAGE_SERVICE_URL",
    "IMAGE_SERVICE_API_KEY",
    "WORDPRESS_API_URL",
    "WORDPRESS_USERNAME",
    "WORDPRESS_APP_PASSWORD",
    "LLM_OPENAI_API_KEY",
    "LLM_ANTHROPIC_API_KEY",
    "OUTPUT_BUCKET",
    "NODE_ENV",
    "MODE",
    "EXPORT_DIR",
)


@pytest.fixture
def env(tmp_path, monkeypatch) -> Path:
    for name in CREDENTIAL_ENV:
        monkeypatch.delenv(name, raising=False)
    root = tmp_path / "artifacts"
    monkeypatch.setenv("ROOT_DIR", str(root))
    return root


def _stdout_json(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


def test_strict_mode_without_credentials_fails_with_config_error(env, monkeypatch, capsys):
    monkeypatch.setenv("MODE", "strict")

    code = cli.main(["process-term", "Art Appraisal of Antique Lamps"])

    assert code == cli.EXIT_FAILED
    output = _stdout_json(capsys)
    result = output["batches"][0]["results"][0]
    assert result["failed_stage"] == "research"
    assert result["error_kind"] == "config"
    assert not (env / "art-appraisal-of-antique-lamps" / "article.md").exists()


def test_development_mode_completes_with_mock_artifacts(env, monkeypatch, capsys):
    monkeypatch.setenv("MODE", "development")

    code = cli.main(["process-term", "Art Appraisal of Antique Lamps"])

    assert code == cli.EXIT_OK
    slug_dir = env / "art-appraisal-of-antique-lamps"
    assert (slug_dir / "article.md").exists()
    sidecars = [p for p in slug_dir.rglob("*.meta") if p.name != "run.json.meta"]
    assert sidecars
    for sidecar in sidecars:
        assert json.loads(sidecar.read_text(encoding="utf-8"))["mock"] is True, sidecar
    assert _stdout_json(capsys)["successful"] == 1


def test_mode_flag_overrides_environment(env, monkeypatch, capsys):
    monkeypatch.setenv("MODE", "strict")
    assert cli.main(["--mode", "development", "process-term", "antique lamps"]) == cli.EXIT_OK


def test_export_and_restore_defaults(env, tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MODE", "development")
    assert cli.main(["process-term", "antique lamps"]) == cli.EXIT_OK
    capsys.readouterr()

    site = tmp_path / "site"
    assert cli.main(["export", "--to", str(site)]) == cli.EXIT_OK
    assert (site / "antique-lamps.md").exists()
    assert _stdout_json(capsys)["exported"] == {"antique-lamps": str(site / "antique-lamps.md")}

    assert cli.main(["export", "--to", str(site), "--term", "never processed"]) == cli.EXIT_FAILED
    capsys.readouterr()

    assert cli.main(["restore-defaults"]) == cli.EXIT_OK
    restored = _stdout_json(capsys)
    assert "antique-lamps/article.md" in restored["purged"]
    assert restored["runs_reset"] == ["antique-lamps"]
    assert not (env / "antique-lamps" / "article.md").exists()


def test_seed_file_batch(env, tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MODE", "development")
    seed = tmp_path / "seeds.txt"
    seed.write_text("# lamps\nantique lamps\n\nAntique  Lamps\ntiffany vases\n", encoding="utf-8")

    assert cli.main(["process", str(seed)]) == cli.EXIT_OK
    output = _stdout_json(capsys)
    assert output["successful"] == 2
    assert output["failed"] == 0


def test_publish_without_article_fails(env, capsys):
    assert cli.main(["publish", "--term", "antique lamps"]) == cli.EXIT_FAILED


def test_missing_seed_file_is_usage_error(env, tmp_path):
    assert cli.main(["process", str(tmp_path / "missing.txt")]) == cli.EXIT_USAGE


def test_empty_seed_file_is_usage_error(env, tmp_path):
    seed = tmp_path / "empty.txt"
    seed.write_text("# nothing\n\n", encoding="utf-8")
    assert cli.main(["process", str(seed)]) == cli.EXIT_USAGE


@pytest.mark.parametrize("argv", [[], ["process"], ["--mode", "bogus", "process-term", "x"], ["unknown"]])
def test_bad_arguments_exit_with_usage_code(env, argv):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    assert excinfo.value.code == cli.EXIT_USAGE


@pytest.mark.parametrize(
    "overrides",
    [
        {"BATCH_SIZE": "0"},
        {"MODE": "production"},
        {"RETRY_BASE_DELAY": "-1"},
        {"RESEARCH_TTL": "-5"},
        {"SECTION_MIN_WORDS": "500", "SECTION_MAX_WORDS": "400"},
    ],
)
def test_invalid_configuration_exits_with_config_code(env, monkeypatch, overrides):
    for name, value in overrides.items():
        monkeypatch.setenv(name, value)
    assert cli.main(["process-term", "antique lamps"]) == cli.EXIT_CONFIG


def test_read_seed_file_skips_comments_blanks_and_duplicates(tmp_path):
    seed = tmp_path / "seeds.txt"
    seed.write_text("Antique Lamps\n  # comment\n\nantique   lamps\n!!!\nTiffany Vases\n", encoding="utf-8")
    assert cli.read_seed_file(seed) == ["Antique Lamps", "Tiffany Vases"]


def test_chunked_and_combined_exit_code():
    assert cli.chunked(["a", "b", "c"], 2) == [["a", "b"], ["c"]]
    assert cli.combined_exit_code(3, 0) == cli.EXIT_OK
    assert cli.combined_exit_code(2, 1) == cli.EXIT_PARTIAL
    assert cli.combined_exit_code(0, 2) == cli.EXIT_FAILED
