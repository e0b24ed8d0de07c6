import json
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

from . import __version__
from .utils.files import listFiles
from .utils.logging import info, warning
from .utils.shell import ShellCommandError, shell, which

__doc__ = """\
Copies (and when `esbuild` is available, bundles) the front-end assets of a
source directory into a distributable folder, which is what the server is
then pointed at.
"""

# The build tool's own scripts, which are not assets
EXCLUDED_SCRIPTS: tuple[str, ...] = ("index.js", "build.js")
# Scripts that are loaded separately and must not go in the bundle
UNBUNDLED: tuple[str, ...] = ("jquery", "recaptcha")
IMAGE_SUFFIXES: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".gif")
DOWNLOAD_SUFFIX: str = ".download"
STAGING_PREFIX: str = "temp_"
ENTRY: str = "temp_entry.js"
BUNDLE: str = "bundle.min.js"
GLOBAL_NAME: str = "App"
BUILD_INFO: str = "build-info.json"


class BuildError(RuntimeError):
	pass


class BuildFiles(NamedTuple):
	javascript: int = 0
	css: int = 0
	html: int = 0
	images: int = 0


class BuildInfo(NamedTuple):
	timestamp: str
	files: BuildFiles
	buildVersion: str
	bundled: bool = False

	def asPrimitive(self) -> dict[str, object]:
		return {
			"timestamp": self.timestamp,
			"files": self.files._asdict(),
			"buildVersion": self.buildVersion,
		}


def listScripts(source: Path) -> list[Path]:
	"""Lists the JavaScript assets of `source`, including the `.js.download`
	files that browsers produce when saving a page."""
	return [
		_
		for _ in listFiles(source)
		if _.name.endswith(".js.download")
		or (_.name.endswith(".js") and _.name not in EXCLUDED_SCRIPTS)
	]


def projectVersion(source: Path) -> str:
	"""Returns the version from the `package.json` of the source directory,
	defaulting to this package's version."""
	package = source / "package.json"
	if package.is_file():
		try:
			version = json.loads(package.read_text()).get("version")
		except (OSError, ValueError) as e:
			warning("Could not read package.json", Path=str(package), Reason=str(e))
		else:
			if isinstance(version, str) and version:
				return version
	return __version__


def stage(source: Path, scripts: list[Path]) -> list[Path]:
	"""Returns the scripts to process, copying `.download` files to a
	`temp_`-prefixed `.js` file first."""
	staged: list[Path] = []
	for path in scripts:
		if path.name.endswith(DOWNLOAD_SUFFIX):
			target = source / f"{STAGING_PREFIX}{path.name[: -len(DOWNLOAD_SUFFIX)]}"
			shutil.copyfile(path, target)
			staged.append(target)
		else:
			staged.append(path)
	return staged


def bundle(source: Path, output: Path, scripts: list[Path]) -> bool:
	"""Bundles and minifies the scripts with `esbuild` into a single file,
	returning `False` when `esbuild` is not available or fails."""
	if not which("npx"):
		warning("esbuild not available, copying files directly...", icon="⚠️")
		return False
	info("Using esbuild for bundling and minification...", icon="🔧")
	entry = source / ENTRY
	entry.write_text(
		"\n".join(
			f"import './{_.name}';"
			for _ in scripts
			if not any(name in _.name for name in UNBUNDLED)
		)
	)
	try:
		shell(
			[
				"npx",
				"esbuild",
				ENTRY,
				"--bundle",
				"--minify",
				f"--outfile={output / BUNDLE}",
				"--format=iife",
				f"--global-name={GLOBAL_NAME}",
			],
			cwd=source,
		)
	except (ShellCommandError, FileNotFoundError) as e:
		warning("esbuild failed, copying files directly...", icon="⚠️", Reason=str(e))
		return False
	finally:
		entry.unlink(missing_ok=True)
	info(f"Bundle created: {output.name}/{BUNDLE}", icon="✅")
	return True


def copyScripts(output: Path, staged: list[Path]) -> None:
	for path in staged:
		name = path.name.removeprefix(STAGING_PREFIX)
		shutil.copyfile(path, output / name)
		info(f"Copied: {path.name} -> {output.name}/{name}", icon="📄")


def copyAll(files: list[Path], output: Path, title: str, icon: str) -> None:
	if files:
		info(title, icon=icon)
		for path in files:
			shutil.copyfile(path, output / path.name)
			info(f"  - {path.name} -> {output.name}/{path.name}")


def build(
	source: Path | str,
	output: Path | str | None = None,
	*,
	version: str | None = None,
	bundled: bool = True,
) -> BuildInfo:
	"""Builds the assets of `source` into `output` (`source/dist` by default),
	and writes a `build-info.json` summary there."""
	src: Path = Path(source).absolute()
	out: Path = src / "dist" if output is None else Path(output).absolute()
	if not src.is_dir():
		raise BuildError(f"Source directory does not exist: {src}")
	info("Building project...", icon="🏗️", Source=str(src), Output=str(out))
	staged: list[Path] = []
	try:
		if not out.exists():
			out.mkdir(parents=True)
			info(f"Created {out.name} directory", icon="📁")
		scripts = listScripts(src)
		has_bundle: bool = False
		if scripts:
			info("Found JavaScript files to process:", icon="📦")
			for path in scripts:
				info(f"  - {path.name}")
			staged = stage(src, scripts)
			has_bundle = bundled and bundle(src, out, staged)
			if not has_bundle:
				copyScripts(out, staged)
		css = listFiles(src, (".css",))
		copyAll(css, out, "Processing CSS files:", "🎨")
		html = listFiles(src, (".html",))
		copyAll(html, out, "Processing HTML files:", "📄")
		images = listFiles(src, IMAGE_SUFFIXES)
		if images:
			info("Processing images:", icon="🖼️")
			(out / "images").mkdir(exist_ok=True)
			for path in images:
				shutil.copyfile(path, out / "images" / path.name)
			info(f"  - Copied {len(images)} images to {out.name}/images/")
		res = BuildInfo(
			timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
			files=BuildFiles(
				javascript=len(scripts),
				css=len(css),
				html=len(html),
				images=len(images),
			),
			buildVersion=version or projectVersion(src),
			bundled=has_bundle,
		)
		(out / BUILD_INFO).write_text(json.dumps(res.asPrimitive(), indent=2))
	except OSError as e:
		raise BuildError(f"Build failed: {e}") from e
	finally:
		for path in staged:
			if path.name.startswith(STAGING_PREFIX):
				path.unlink(missing_ok=True)
	info("Build completed successfully!", icon="✅")
	info(f"Build info saved to {out.name}/{BUILD_INFO}", icon="📊")
	return res


# EOF
