"""Tests for the settings file reader."""

import subprocess
from unittest.mock import patch

import pytest

from hotfolder.config import read_settings_file


class TestPlainFile:
    def test_reads_values(self, tmp_path):
        env = tmp_path / "hotfolder.env"
        env.write_text("HOTFOLDER_URL=/mnt/scans\nHOTFOLDER_PATTERNS='\\.pdf$'\n")
        settings = read_settings_file(env)
        assert settings["HOTFOLDER_URL"] == "/mnt/scans"
        assert settings["HOTFOLDER_PATTERNS"] == "\\.pdf$"

    def test_missing_file_is_empty(self, tmp_path):
        assert read_settings_file(tmp_path / "absent.env") == {}


class TestEncryptedFile:
    def test_missing_encrypted_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Encrypted settings file"):
            read_settings_file(tmp_path / "hotfolder.env.enc")

    def test_decrypts_with_sops(self, tmp_path):
        enc = tmp_path / "hotfolder.env.enc"
        enc.write_text("ciphertext")
        done = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="HOTFOLDER_PASSWORD=s3cret\n", stderr=""
        )
        with patch("hotfolder.config.subprocess.run", return_value=done) as run:
            settings = read_settings_file(enc)

        assert settings == {"HOTFOLDER_PASSWORD": "s3cret"}
        assert run.call_args.args[0] == ["sops", "--decrypt", str(enc)]

    def test_sops_failure_propagates(self, tmp_path):
        enc = tmp_path / "hotfolder.env.enc"
        enc.write_text("ciphertext")
        error = subprocess.CalledProcessError(1, ["sops"])
        with patch("hotfolder.config.subprocess.run", side_effect=error):
            with pytest.raises(subprocess.CalledProcessError):
                read_settings_file(enc)
