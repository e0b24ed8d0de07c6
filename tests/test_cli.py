import json

import pytest

from spaserve import __main__ as cli
from spaserve.config import FALLBACK, HOST, PORT


@pytest.fixture
def served(monkeypatch):
	calls: list[dict] = []

	def run(**kwargs):
		calls.append(kwargs)
		return 0

	monkeypatch.setattr(cli, "run", run)
	return calls


def test_serve_defaults(served):
	assert cli.main([]) == 0
	assert served == [dict(root=None, fallback=FALLBACK, host=HOST, port=PORT)]


def test_serve_options(served, tmp_path):
	assert cli.main(["serve", "-p", "8080", "-H", "127.0.0.1", "-r", str(tmp_path)]) == 0
	assert served[-1] == dict(
		root=str(tmp_path), fallback=FALLBACK, host="127.0.0.1", port=8080
	)


def test_serve_is_default_command(served):
	assert cli.main(["-p", "8081", "--fallback", "index.html"]) == 0
	assert served[-1]["port"] == 8081
	assert served[-1]["fallback"] == "index.html"


def test_serve_invalid_port(served):
	assert cli.main(["serve", "--port", "http"]) == 0
	assert served[-1]["port"] == PORT


def test_serve_status(monkeypatch):
	monkeypatch.setattr(cli, "run", lambda **kwargs: 1)
	assert cli.main(["serve"]) == 1


def test_build(tmp_path):
	(tmp_path / "index.html").write_text("<h1>Home</h1>")
	out = tmp_path / "out"
	assert cli.main(["build", str(tmp_path), "-o", str(out), "--no-bundle"]) == 0
	info = json.loads((out / "build-info.json").read_text())
	assert info["files"]["html"] == 1
	assert (out / "index.html").exists()


def test_build_failure(tmp_path):
	assert cli.main(["build", str(tmp_path / "missing")]) == 1


# EOF
