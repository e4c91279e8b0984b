"""Shared fixtures for burrow tests."""

import shutil
import subprocess
from pathlib import Path

import pytest


@pytest.fixture
def tls_files(tmp_path: Path) -> tuple[Path, Path]:
    """A throwaway self-signed certificate and key for ``localhost``."""
    if shutil.which("openssl") is None:
        pytest.skip("openssl not available")

    cert_file = tmp_path / "localhost.pem"
    key_file = tmp_path / "localhost-key.pem"
    subprocess.run(
        [
            "openssl",
            "req",
            "-x509",
            "-newkey",
            "rsa:2048",
            "-nodes",
            "-sha256",
            "-days",
            "1",
            "-subj",
            "/CN=localhost",
            "-keyout",
            str(key_file),
            "-out",
            str(cert_file),
        ],
        check=True,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return cert_file, key_file
