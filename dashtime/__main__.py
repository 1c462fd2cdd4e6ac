from dashtime.cli import cli

if __name__ == "__main__":
    cli()  # pylint: disable=no-value-for-parameter
