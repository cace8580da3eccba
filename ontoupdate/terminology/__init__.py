# ontoupdate/terminology/__init__.py

from flask import Blueprint

# --- Module Metadata ---
metadata = {
    'module_id': 'terminology',
    'display_name': 'Ontology Server Update',
    'description': 'Creates CodeSystems and ValueSets missing from a FHIR terminology server.',
    'version': '0.1.0',
}
# --- End Module Metadata ---

# CLI only; commands are exposed as `flask onto <command>`
bp = Blueprint(metadata['module_id'], __name__, cli_group='onto')

# Import commands after creating blueprint
from . import commands # noqa: F401 E402
