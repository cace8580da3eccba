# ontoupdate/terminology/commands.py
# CLI commands for the terminology blueprint: `flask onto update`

import logging
import click
from flask import current_app
from . import bp
from .errors import OntoUpdateError
from .parser import ENCODINGS
from .services import run_onto_update

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2


def exit_code_for(summary):
    """0 when every resource reconciled cleanly, 2 when some failed."""
    return EXIT_OK if summary.get('status') == 'success' else EXIT_PARTIAL


def run_update_job(config, dry_run=False, ig_location=None, onto_location=None, encoding=None):
    """
    Runs the update and maps the outcome to a process exit status.
    Fatal failures (archive fetch/parse, bad client settings) are logged here.
    """
    try:
        summary = run_onto_update(config, dry_run=dry_run, ig_location=ig_location,
                                  onto_location=onto_location, encoding=encoding)
    except OntoUpdateError as e:
        logger.error(f"Ontology update aborted: {e}")
        return EXIT_FATAL, None
    except ValueError as e:
        logger.error(f"Ontology update misconfigured: {e}")
        return EXIT_FATAL, None
    except Exception as e:
        logger.error(f"Ontology update failed: {e}", exc_info=True)
        return EXIT_FATAL, None
    return exit_code_for(summary), summary


@bp.cli.command('update')
@click.option('--ig-location', default=None, help='Implementation guide base URL hosting validator.pack.')
@click.option('--onto-location', default=None, help='Terminology server FHIR base URL.')
@click.option('--encoding', type=click.Choice(ENCODINGS, case_sensitive=False), default=None,
              help='Wire encoding used with the terminology server.')
@click.option('--dry-run', is_flag=True, help='Report missing resources without creating them.')
@click.option('--verbose', '-v', is_flag=True, help='Log each parsed resource.')
def update(ig_location, onto_location, encoding, dry_run, verbose):
    """Create CodeSystems and ValueSets missing from the terminology server."""
    if verbose:
        logging.getLogger('ontoupdate').setLevel(logging.DEBUG)

    exit_code, summary = run_update_job(current_app.config, dry_run=dry_run, ig_location=ig_location,
                                        onto_location=onto_location, encoding=encoding)
    if summary is not None:
        click.echo(summary['message'])
        for detail in summary['failed_details']:
            click.echo(f"  FAILED {detail['resource']}: {detail['error']}", err=True)
    else:
        click.echo("Ontology update aborted; see log for details.", err=True)
    raise SystemExit(exit_code)
