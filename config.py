# config.py
# Configuration settings for the ontology update job

import os


class Config:
    """Base configuration class."""

    # Implementation guide hosting the validator.pack archive (trailing slash expected)
    IG_LOCATION = os.environ.get('IG_LOCATION') or 'https://hl7-uk.github.io/UK-STU3/'

    # Terminology server receiving missing CodeSystems/ValueSets
    ONTO_LOCATION = os.environ.get('ONTO_LOCATION') or 'https://ontoserver.dataproducts.nhs.uk/fhir/'
    ONTO_ENCODING = os.environ.get('ONTO_ENCODING', 'xml').lower()
    ONTO_AUTH_TOKEN = os.environ.get('ONTO_AUTH_TOKEN')

    # fhir.resources model package used to parse archive and baseline content
    FHIR_RELEASE = os.environ.get('FHIR_RELEASE', 'STU3')

    HTTP_TIMEOUT = int(os.environ.get('HTTP_TIMEOUT', 60))

    # Packaged reference bundles, loaded in this order
    BASELINE_DATASETS = ['valuesets.xml', 'v2-tables.xml', 'v3-codesystems.xml']
    # Directory holding those bundles; unset uses the copies shipped in the package.
    # Point it at an unpacked FHIR definitions.xml.zip to load the full core sets.
    BASELINE_DATA_DIR = os.environ.get('BASELINE_DATA_DIR')

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    # Optional rotating debug log, e.g. instance/onto_update.log
    LOG_FILE = os.environ.get('LOG_FILE')


class TestingConfig(Config):
    """Configuration specific to testing."""
    TESTING = True

    # Endpoints are never contacted in tests; requests is patched
    IG_LOCATION = 'http://ig.test/'
    ONTO_LOCATION = 'http://onto.test/fhir'
    ONTO_ENCODING = 'json'
    ONTO_AUTH_TOKEN = None
    HTTP_TIMEOUT = 5

    LOG_LEVEL = 'DEBUG'
    LOG_FILE = None
