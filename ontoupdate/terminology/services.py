import os
import logging
import tempfile
import warnings
import zipfile
import zlib
import requests
from .client import OntoServerClient
from .errors import (
    RemoteFetchError,
    ArchiveParseError,
    RemoteQueryError,
    RemoteCreateError,
    BaselineLoadWarning,
)
from .models import ResourceKind, ResourceStore, TERMINOLOGY_KINDS, clear_narrative
from .parser import ResourceParser

logger = logging.getLogger(__name__)

# --- Constants ---
VALIDATOR_PACK = "validator.pack"
ARCHIVE_ENTRY_SUFFIX = ".json"
DATA_DIR = os.path.join(os.path.dirname(__file__), 'data')
DEFAULT_BASELINE_DATASETS = ('valuesets.xml', 'v2-tables.xml', 'v3-codesystems.xml')
# Archives up to this size stay in memory while being read
SPOOL_MAX_BYTES = 32 * 1024 * 1024


# --- Helper Functions ---

def _store_resource(store, resource):
    """Clears the narrative of terminology resources and hands them to the store."""
    if ResourceKind.of(resource).is_terminology:
        clear_narrative(resource)
    return store.add(resource)


def _parse_archive_entry(archive, info, parser):
    """Reads one zip member as UTF-8 JSON and parses it into a resource."""
    try:
        with archive.open(info) as entry:
            content = entry.read().decode('utf-8-sig')
        return parser.parse_json(content)
    except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
        # Corrupt, truncated, encrypted or unsupported-compression member
        raise ArchiveParseError(f"Could not read archive entry {info.filename}: {e}", entry_name=info.filename) from e
    except (ValueError, LookupError) as e:
        # ValueError covers UnicodeDecodeError, JSONDecodeError and model validation errors;
        # LookupError is an unknown resourceType for the release
        raise ArchiveParseError(f"Could not parse archive entry {info.filename}: {e}", entry_name=info.filename) from e


def read_archive(fileobj, store, parser):
    """
    Parses every .json entry of a validator pack into the store.

    A malformed entry is logged, recorded in store.load_errors and skipped;
    a file that is not a zip archive at all raises ArchiveParseError.
    Returns the number of entries parsed.
    """
    try:
        archive = zipfile.ZipFile(fileobj)
    except zipfile.BadZipFile as e:
        raise ArchiveParseError(f"Validator pack is not a valid zip archive: {e}") from e

    parsed_count = 0
    with archive:
        for info in archive.infolist():
            if info.is_dir() or not info.filename.endswith(ARCHIVE_ENTRY_SUFFIX):
                logger.debug(f"Skipping archive entry {info.filename}")
                continue
            try:
                resource = _parse_archive_entry(archive, info, parser)
            except ArchiveParseError as e:
                logger.warning(str(e))
                store.record_error(info.filename, e)
                continue
            parsed_count += 1
            _store_resource(store, resource)
            logger.info(info.filename)
            if logger.isEnabledFor(logging.DEBUG):
                try:
                    logger.debug(parser.encode(resource, 'json'))
                except (ValueError, TypeError) as e:
                    logger.warning(f"Could not serialize {info.filename} for debug output: {e}")
    return parsed_count


def fetch_archive(ig_location, store=None, parser=None, timeout=60):
    """
    Downloads {ig_location}validator.pack and loads its CodeSystems and ValueSets.

    Args:
        ig_location (str): Base URL of the implementation guide, with trailing slash.
        store (ResourceStore): Store to fill; a new one is created if omitted.
        parser (ResourceParser): Parser for the archive's FHIR release.
        timeout (int): HTTP timeout in seconds.

    Returns:
        ResourceStore: The store passed in (or the new one).

    Raises:
        RemoteFetchError: Non-200 response or transport failure. The store is not touched.
        ArchiveParseError: The response body is not a zip archive.
    """
    store = store if store is not None else ResourceStore()
    parser = parser or ResourceParser()
    pack_url = f"{ig_location}{VALIDATOR_PACK}"
    logger.info(f"Retrieving validator pack from {pack_url}")

    # Entries are collected separately so a failed fetch leaves the caller's store untouched
    fetched = ResourceStore()
    try:
        with requests.get(pack_url, stream=True, timeout=timeout) as response:
            if response.status_code != 200:
                logger.error(f"Failed to retrieve validator pack: {response.status_code} {response.reason}")
                raise RemoteFetchError(f"Unable to load validator pack from {pack_url}: {response.reason}",
                                       status_code=response.status_code, reason=response.reason)
            logger.info("Retrieved validator pack")
            with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES) as spool:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        spool.write(chunk)
                spool.seek(0)
                parsed_count = read_archive(spool, fetched, parser)
    except requests.exceptions.RequestException as e:
        logger.error(f"Download failed for {pack_url}: {e}")
        raise RemoteFetchError(f"Unable to load validator pack from {pack_url}: {e}") from e

    logger.info(f"Validator pack: {parsed_count} entries parsed, {len(fetched.code_systems)} CodeSystems, "
                f"{len(fetched.value_sets)} ValueSets, {len(fetched.load_errors)} entry errors")
    return store.merge(fetched)


def load_baseline_set(datasets=None, data_dir=None, parser=None):
    """
    Loads the packaged reference bundles (FHIR XML) into a new store.

    Datasets are read in order, so a later dataset replaces an earlier one's
    resource for the same URL. A missing dataset is warned about and
    skipped; one that fails to parse is logged and recorded in load_errors.
    """
    datasets = DEFAULT_BASELINE_DATASETS if datasets is None else datasets
    data_dir = data_dir or DATA_DIR
    parser = parser or ResourceParser()
    store = ResourceStore()

    for name in datasets:
        path = os.path.join(data_dir, name)
        logger.info(f"Loading CodeSystem/ValueSet from packaged dataset: {name}")
        if not os.path.exists(path):
            message = f"Unable to load packaged dataset: {path}"
            logger.warning(message)
            warnings.warn(message, BaselineLoadWarning, stacklevel=2)
            store.record_error(name, message, level='warning')
            continue
        try:
            with open(path, 'rb') as f:
                bundle = parser.parse_bundle(f.read(), 'xml')
        except (OSError, ValueError, LookupError) as e:
            logger.error(f"Failed to load packaged dataset {name}: {e}", exc_info=True)
            store.record_error(name, e)
            continue

        stored = 0
        for entry in bundle.entry or []:
            if entry.resource is not None and _store_resource(store, entry.resource):
                stored += 1
        logger.debug(f"Loaded {stored} terminology resources from {name}")

    logger.info(f"Baseline set: {len(store.code_systems)} CodeSystems, {len(store.value_sets)} ValueSets")
    return store


# --- Reconciliation ---

def lookup_remote(client, kind, url):
    """
    Returns the server's resources of this kind whose url equals url.

    An empty list means absent. More than one match is an inconsistency on
    the server; it is logged and the caller treats the resource as present.
    Raises RemoteQueryError if the search fails.
    """
    matches = client.search(kind, url)
    if len(matches) > 1:
        logger.error(f"Multiple {kind.value}s detected {url}")
    if matches:
        logger.debug(f"fetch{kind.value} OK {url}")
    else:
        logger.info(f"fetch{kind.value} MISSING {url}")
    return matches


def create_remote(client, resource):
    """
    Clears the local id and conditionally creates the resource on the server.

    Returns the client's outcome dict. A 'not created' outcome means another
    writer got there first; it is logged, not raised.
    """
    resource.id = None
    outcome = client.conditional_create(resource, resource.url)
    if outcome['created']:
        logger.info(f"Ontology server. Create {resource.resource_type} {resource.url}")
    else:
        logger.info(f"Ontology server did not create {resource.resource_type} {resource.url} (Status: {outcome['status_code']})")
    return outcome


def reconcile(store, client, dry_run=False):
    """
    Creates on the server every stored CodeSystem, then ValueSet, it lacks.

    Each resource is handled on its own: a failed search or create is
    logged and counted, and the loop moves on.

    Returns:
        dict: Summary with status, message, counts and failed_details.
    """
    summary = {
        'checked': 0, 'present': 0, 'created': 0, 'not_created': 0,
        'would_create': 0, 'ambiguous': 0, 'failed': 0,
        'failed_details': [], 'dry_run': dry_run,
    }

    for kind in TERMINOLOGY_KINDS:
        for url, resource in store.items(kind):
            summary['checked'] += 1
            resource_log_id = f"{kind.value} {url}"
            try:
                matches = lookup_remote(client, kind, url)
            except RemoteQueryError as e:
                # Unknown remote state: skip the create rather than risk a duplicate
                logger.error(str(e))
                summary['failed'] += 1
                summary['failed_details'].append({'resource': resource_log_id, 'error': str(e)})
                continue

            if matches:
                summary['present'] += 1
                if len(matches) > 1:
                    summary['ambiguous'] += 1
                continue

            logger.info(f"Missing {url}")
            if dry_run:
                logger.info(f"[DRY RUN] Would create {resource_log_id}")
                summary['would_create'] += 1
                continue

            try:
                outcome = create_remote(client, resource)
            except RemoteCreateError as e:
                logger.error(str(e))
                summary['failed'] += 1
                summary['failed_details'].append({'resource': resource_log_id, 'error': str(e)})
                continue
            summary['created' if outcome['created'] else 'not_created'] += 1

    if summary['failed'] == 0:
        summary['status'] = 'success'
    elif summary['checked'] > summary['failed']:
        summary['status'] = 'partial'
    else:
        summary['status'] = 'failure'

    dry_run_prefix = "[DRY RUN] " if dry_run else ""
    summary['message'] = (f"{dry_run_prefix}Update finished: {summary['created']} created, "
                          f"{summary['would_create']} would be created, {summary['not_created']} not created, "
                          f"{summary['failed']} failed, {summary['ambiguous']} ambiguous "
                          f"({summary['checked']} resources checked).")
    return summary


def run_onto_update(config, dry_run=False, ig_location=None, onto_location=None, encoding=None):
    """
    Runs the whole job: archive, baseline, merge, reconcile.

    config is a mapping with the keys of config.Config (e.g. current_app.config);
    the keyword arguments override it. Archive failures propagate to the caller.
    """
    ig_location = ig_location or config['IG_LOCATION']
    onto_location = onto_location or config['ONTO_LOCATION']
    encoding = encoding or config.get('ONTO_ENCODING', 'xml')
    timeout = config.get('HTTP_TIMEOUT', 60)
    parser = ResourceParser(config.get('FHIR_RELEASE', 'STU3'))
    # Built before any download so bad client settings fail fast
    client = OntoServerClient(onto_location, encoding=encoding, fhir_release=parser.fhir_release,
                              auth_token=config.get('ONTO_AUTH_TOKEN'), timeout=timeout, parser=parser)

    with client:
        archive_store = fetch_archive(ig_location, parser=parser, timeout=timeout)
        baseline_store = load_baseline_set(config.get('BASELINE_DATASETS'), data_dir=config.get('BASELINE_DATA_DIR'),
                                           parser=parser)

        # Archive is the fresher source, so it wins over the baseline on shared URLs
        working_store = ResourceStore().merge(baseline_store).merge(archive_store)
        logger.info(f"Working set: {len(working_store.code_systems)} CodeSystems, {len(working_store.value_sets)} ValueSets")

        summary = reconcile(working_store, client, dry_run=dry_run)

    summary['load_errors'] = working_store.load_errors
    if summary['status'] == 'success' and any(e['level'] == 'error' for e in working_store.load_errors):
        summary['status'] = 'partial'
    summary['code_systems'] = len(working_store.code_systems)
    summary['value_sets'] = len(working_store.value_sets)
    logger.info(f"[Onto Update] Status: {summary['status']}. {summary['message']}")
    return summary
