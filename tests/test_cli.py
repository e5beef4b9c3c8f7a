"""End-to-end tests for the totpvault command line."""

from __future__ import annotations

import json

import pytest

from totpvault.config import ENV_DATABASE, ENV_ENCRYPTION_KEY
from totpvault.main import main
from totpvault.otp.generator import CodeGenerator
from totpvault.paths import ENV_DATA_DIR
from tests.conftest import HELLO_SECRET, OTHER_SECRET


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    for name in (ENV_ENCRYPTION_KEY, ENV_DATABASE, ENV_DATA_DIR):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "data"


def run(data_dir, *argv):
    return main(["--data-dir", str(data_dir), *argv])


class TestInit:
    def test_creates_config(self, data_dir, capsys):
        assert run(data_dir, "init") == 0
        assert (data_dir / "config.ini").exists()
        assert "Configuration written" in capsys.readouterr().out

    def test_second_init_fails(self, data_dir, capsys):
        run(data_dir, "init")
        assert run(data_dir, "init") == 2
        assert "already exists" in capsys.readouterr().err


class TestCode:
    def test_prints_code(self, data_dir, capsys):
        uri = f"otpauth://totp/x?secret={HELLO_SECRET}"
        assert run(data_dir, "code", uri, "--at", "59") == 0
        expected = CodeGenerator.generate(HELLO_SECRET, at=59).code
        assert capsys.readouterr().out.strip() == f"{expected} (1s remaining)"

    def test_bad_uri(self, data_dir, capsys):
        assert run(data_dir, "code", "otpauth://hotp/x?secret=AAAA") == 1
        assert "TOTP" in capsys.readouterr().err


class TestVaultCommands:
    def test_without_key(self, data_dir, capsys):
        assert run(data_dir, "list", "--owner", "1") == 2
        assert ENV_ENCRYPTION_KEY in capsys.readouterr().err

    def test_import_list_export(self, data_dir, tmp_path, capsys):
        run(data_dir, "init")
        source = tmp_path / "backup.json"
        source.write_text(
            json.dumps(
                {
                    "entries": [
                        {"name": "alice", "issuer": "GitHub", "secret": HELLO_SECRET},
                        {"name": "bob", "secret": OTHER_SECRET, "digits": 8},
                    ]
                }
            ),
            encoding="utf-8",
        )
        capsys.readouterr()

        assert run(data_dir, "import", "--owner", "1", str(source)) == 0
        assert json.loads(capsys.readouterr().out)["imported"] == 2

        assert run(data_dir, "list", "--owner", "1") == 0
        listing = json.loads(capsys.readouterr().out)
        assert sorted(e["name"] for e in listing["entries"]) == ["alice", "bob"]
        assert all("secret" not in e for e in listing["entries"])

        output = tmp_path / "export.json"
        assert run(data_dir, "export", "--owner", "1", "--output", str(output)) == 0
        exported = json.loads(output.read_text(encoding="utf-8"))
        assert exported["type"] == "totp-sync-export"
        assert sorted(e["secret"] for e in exported["entries"]) == sorted(
            [HELLO_SECRET, OTHER_SECRET]
        )

    def test_uri_import_and_export(self, data_dir, tmp_path, capsys):
        run(data_dir, "init")
        source = tmp_path / "uris.txt"
        source.write_text(
            f"otpauth://totp/GitHub:alice?secret={HELLO_SECRET}\n\nnot-a-uri\n",
            encoding="utf-8",
        )
        capsys.readouterr()

        assert run(data_dir, "import", "--owner", "1", "--uris", str(source)) == 1
        result = json.loads(capsys.readouterr().out)
        assert (result["imported"], result["failed"]) == (1, 1)

        assert run(data_dir, "export", "--owner", "1", "--uri") == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["count"] == 1
        assert payload["uris"][0].startswith("otpauth://totp/GitHub:alice?")

    def test_replace_import(self, data_dir, tmp_path, capsys):
        run(data_dir, "init")
        first = tmp_path / "first.json"
        first.write_text(json.dumps([{"name": "old", "secret": HELLO_SECRET}]), encoding="utf-8")
        second = tmp_path / "second.json"
        second.write_text(json.dumps([{"name": "new", "secret": OTHER_SECRET}]), encoding="utf-8")

        run(data_dir, "import", "--owner", "1", str(first))
        run(data_dir, "import", "--owner", "1", "--replace", str(second))
        capsys.readouterr()

        run(data_dir, "list", "--owner", "1")
        names = [e["name"] for e in json.loads(capsys.readouterr().out)["entries"]]
        assert names == ["new"]


class TestFileErrors:
    def test_missing_import_file(self, data_dir, tmp_path, capsys):
        run(data_dir, "init")
        capsys.readouterr()
        missing = tmp_path / "nope.json"
        assert run(data_dir, "import", "--owner", "1", str(missing)) == 1
        assert "Cannot read" in capsys.readouterr().err

    def test_non_utf8_uri_file(self, data_dir, tmp_path, capsys):
        run(data_dir, "init")
        capsys.readouterr()
        source = tmp_path / "uris.txt"
        source.write_bytes(b"\xff\xfe otpauth://totp/x\n")
        assert run(data_dir, "import", "--owner", "1", "--uris", str(source)) == 1
        assert "not UTF-8" in capsys.readouterr().err

    def test_unwritable_export_target(self, data_dir, tmp_path, capsys):
        run(data_dir, "init")
        capsys.readouterr()
        target = tmp_path / "missing-dir" / "export.json"
        assert run(data_dir, "export", "--owner", "1", "--output", str(target)) == 1
        assert "Cannot write" in capsys.readouterr().err
