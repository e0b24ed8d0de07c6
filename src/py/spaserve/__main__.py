import argparse
import sys

from . import __version__
from .build import BuildError, build
from .config import FALLBACK, HOST, PORT, parsePort
from .server import run
from .utils.logging import error

COMMANDS: tuple[str, ...] = ("serve", "build")


def parser() -> argparse.ArgumentParser:
	res = argparse.ArgumentParser(
		prog="spaserve",
		description="Static assets server with single-page application fallback",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
	)
	res.add_argument("--version", action="version", version=__version__)
	commands = res.add_subparsers(dest="command")

	serve = commands.add_parser(
		"serve",
		help="Serves the files of a directory",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
	)
	serve.add_argument(
		"-p",
		"--port",
		action="store",
		dest="port",
		type=lambda _: parsePort(_, PORT),
		help="Specifies the port",
		default=PORT,
	)
	serve.add_argument(
		"-H",
		"--host",
		action="store",
		dest="host",
		help="Specifies the address to bind to",
		default=HOST,
	)
	serve.add_argument(
		"-r",
		"--root",
		action="store",
		dest="root",
		help="The directory to serve, the current directory by default",
	)
	serve.add_argument(
		"-f",
		"--fallback",
		action="store",
		dest="fallback",
		help="The file served for / and for paths that don't match a file",
		default=FALLBACK,
	)

	assets = commands.add_parser(
		"build",
		help="Builds the front-end assets into a distributable folder",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
	)
	assets.add_argument(
		"source",
		metavar="SOURCE",
		nargs="?",
		default=".",
		help="The directory containing the assets",
	)
	assets.add_argument(
		"-o",
		"--output",
		action="store",
		dest="output",
		help="The output directory, SOURCE/dist by default",
	)
	assets.add_argument(
		"--version",
		action="store",
		dest="version",
		help="The build version, from SOURCE/package.json by default",
	)
	assets.add_argument(
		"--no-bundle",
		action="store_false",
		dest="bundled",
		help="Copies the scripts instead of bundling them with esbuild",
	)
	return res


def main(args: list[str] | None = None) -> int:
	args = sys.argv[1:] if args is None else args
	# Serving is the default command
	if not args or args[0] not in COMMANDS + ("-h", "--help", "--version"):
		args = ["serve", *args]
	options = parser().parse_args(args=args)
	if options.command == "build":
		try:
			build(
				options.source,
				options.output,
				version=options.version,
				bundled=options.bundled,
			)
		except BuildError as e:
			error("Build failed", "BUILDERR", Reason=str(e), icon="❌")
			return 1
		return 0
	else:
		return run(
			root=options.root,
			fallback=options.fallback,
			host=options.host,
			port=options.port,
		)


if __name__ == "__main__":
	sys.exit(main())

# EOF
