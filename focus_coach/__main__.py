from focus_coach.cli.service import cli

if __name__ == "__main__":
    cli()
