import click
import sys
import logging
from rich.console import Console

from focus_coach.config.config import config
from focus_coach.config.logging_config import setup_logging
from focus_coach.models.sample import ConfidenceLevel
from focus_coach.services.display import TerminalDisplay
from focus_coach.services.postcheck import detailed_post_check

# Set up logging
logger = logging.getLogger(__name__)

# Initialize console
console = Console()

@click.group()
def cli():
    """Focus Coach - attention monitor and nudge generator"""
    # Set up logging before anything else
    setup_logging()

@cli.command()
@click.option('--context', '-c', 'work_context', required=True, help='What you are working on')
@click.option('--debug', is_flag=True, help='Enable debug output')
def start(work_context, debug):
    """Start monitoring focus for a work context"""
    try:
        from focus_coach.services.runner import run_service
        if debug:
            console.print("[yellow]Starting Focus Coach in debug mode...[/yellow]")
            logging.getLogger().setLevel(logging.DEBUG)
        else:
            console.print("[yellow]Starting Focus Coach...[/yellow]")
        run_service(work_context)
    except Exception as e:
        logger.error(f"Failed to start monitoring: {e}")
        console.print(f"[red]Failed to start monitoring: {e}[/red]")
        sys.exit(1)

@cli.command()
@click.argument('message')
@click.option('--entity', '-e', 'entities', multiple=True, help='Entity the message should mention (repeatable)')
@click.option(
    '--confidence',
    type=click.Choice([level.value for level in ConfidenceLevel], case_sensitive=False),
    default=ConfidenceLevel.LOW.value,
    show_default=True,
    help='Confidence tier to validate against'
)
def check(message, entities, confidence):
    """Validate a nudge message against the output contract"""
    level = ConfidenceLevel(confidence.upper())
    result = detailed_post_check(message, list(entities), level)
    TerminalDisplay(console).show_check_result(message, result)
    if not result.passed:
        sys.exit(1)

@cli.command(name='config')
def show_config():
    """Show the effective configuration"""
    TerminalDisplay(console).show_config(config.as_dict())

if __name__ == '__main__':
    cli()
