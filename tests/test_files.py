from spaserve.utils.files import (
	CONTENT_TYPES,
	DEFAULT_CONTENT_TYPE,
	contentType,
	extension,
	listFiles,
)


def test_extension():
	assert extension("style.css") == ".css"
	assert extension("/srv/app/Logo.PNG") == ".png"
	assert extension("archive.tar.gz") == ".gz"
	assert extension("README") == ""
	assert extension(".hidden") == ""


def test_content_types():
	assert contentType("style.css") == "text/css"
	assert contentType("index.html") == "text/html"
	assert contentType("app.js") == "text/javascript"
	assert contentType("data.json") == "application/json"
	assert contentType("photo.JPG") == "image/jpeg"
	assert contentType("icon.svg") == "image/svg+xml"


def test_content_type_default():
	assert DEFAULT_CONTENT_TYPE == "application/octet-stream"
	assert contentType("data.xyz") == DEFAULT_CONTENT_TYPE
	assert contentType("Makefile") == DEFAULT_CONTENT_TYPE


def test_content_type_table_is_readonly():
	try:
		CONTENT_TYPES[".xyz"] = "text/plain"  # type: ignore[index]
	except TypeError:
		pass
	else:
		raise AssertionError("Content types table should be read-only")
	assert ".xyz" not in CONTENT_TYPES


def test_content_type_custom_table():
	assert contentType("app.wasm", {".wasm": "application/wasm"}) == "application/wasm"
	assert contentType("style.css", {}) == DEFAULT_CONTENT_TYPE


def test_list_files(tmp_path):
	(tmp_path / "b.css").write_text("b")
	(tmp_path / "a.js").write_text("a")
	(tmp_path / "C.PNG").write_bytes(b"c")
	(tmp_path / ".env").write_text("SECRET=1")
	(tmp_path / "assets").mkdir()
	assert [_.name for _ in listFiles(tmp_path)] == ["C.PNG", "a.js", "b.css"]
	assert [_.name for _ in listFiles(tmp_path, (".png", ".css"))] == [
		"C.PNG",
		"b.css",
	]
	assert listFiles(tmp_path, (".html",)) == []


# EOF
