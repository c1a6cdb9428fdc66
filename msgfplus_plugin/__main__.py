import argparse

from rich import traceback

from msgfplus_plugin import __version__, runner

"""msgfplus_plugin.__main__: executed when the package is called as script."""


def _parse_args():
    """Parse the config_path argument."""
    apars = argparse.ArgumentParser(formatter_class=argparse.ArgumentDefaultsHelpFormatter)

    apars.add_argument("-v", "--version", action="version", version=f"{__version__}")
    apars.add_argument(
        "-c",
        "--config_path",
        default=None,
        metavar="CONFIG",
        required=True,
        help="Path to the job config file in json format.",
    )

    args = apars.parse_args()
    return args


def main():
    """Prepare an MS-GF+ job step from the terminal."""
    args = _parse_args()
    runner.run_job(args.config_path)


if __name__ == "__main__":
    traceback.install()
    main()  # pragma: no cover
