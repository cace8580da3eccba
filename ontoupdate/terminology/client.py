import logging
import requests
from .errors import RemoteQueryError, RemoteCreateError
from .models import ResourceKind
from .parser import ResourceParser, ENCODINGS

logger = logging.getLogger(__name__)

MIME_TYPES = {
    'json': 'application/fhir+json',
    'xml': 'application/fhir+xml',
}


def describe_http_error(http_err):
    """Builds a short message from an HTTPError, preferring OperationOutcome diagnostics."""
    response = http_err.response
    status_code = response.status_code if response is not None else 'N/A'
    outcome_text = ""
    if response is not None:
        try:
            outcome = response.json()
            if outcome and outcome.get('resourceType') == 'OperationOutcome':
                issues = outcome.get('issue', [])
                outcome_text = "; ".join([f"{i.get('severity','info')}: {i.get('diagnostics', i.get('details',{}).get('text','No details'))}" for i in issues]) if issues else "OperationOutcome with no issues."
            else:
                outcome_text = response.text[:200]
        except ValueError:
            outcome_text = response.text[:200]
    return f"Status: {status_code}: {outcome_text or str(http_err)}"


class OntoServerClient:
    """
    Search and conditional create against a FHIR terminology server.

    Bound to one base URL and one wire encoding for its lifetime.
    """

    def __init__(self, base_url, encoding='xml', fhir_release='STU3', auth_token=None, timeout=60, parser=None):
        encoding = str(encoding).lower()
        if encoding not in ENCODINGS:
            raise ValueError(f"Unsupported encoding '{encoding}'. Expected one of: {', '.join(ENCODINGS)}")
        if not base_url:
            raise ValueError("A terminology server base URL is required")
        self.base_url = base_url.rstrip('/')
        self.encoding = encoding
        self.timeout = timeout
        self.parser = parser or ResourceParser(fhir_release)
        self.session = requests.Session()
        self.session.headers.update({
            'Accept': MIME_TYPES[encoding],
            'Content-Type': MIME_TYPES[encoding],
        })
        if auth_token:
            self.session.headers['Authorization'] = f'Bearer {auth_token}'
        logger.info(f"Terminology server client for {self.base_url} (encoding: {self.encoding}, auth: {'bearer' if auth_token else 'none'})")

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def search(self, kind, url):
        """
        Searches {base}/{type}?url=<url>.

        Returns the matching resources of the requested type; entries of any
        other type (e.g. OperationOutcome) are left out.
        """
        search_url = f"{self.base_url}/{kind.value}"
        try:
            response = self.session.get(search_url, params={'url': url}, timeout=self.timeout)
            response.raise_for_status()
            bundle = self.parser.parse_bundle(response.content, self.encoding)
        except requests.exceptions.HTTPError as http_err:
            raise RemoteQueryError(f"Search for {kind.value} {url} failed ({describe_http_error(http_err)})") from http_err
        except requests.exceptions.RequestException as req_err:
            raise RemoteQueryError(f"Search for {kind.value} {url} failed: {req_err}") from req_err
        except (ValueError, LookupError) as parse_err:
            raise RemoteQueryError(f"Could not parse search result for {kind.value} {url}: {parse_err}") from parse_err

        matches = [entry.resource for entry in (bundle.entry or [])
                   if entry.resource is not None and ResourceKind.of(entry.resource) is kind]
        logger.debug(f"Search {kind.value}?url={url} returned {len(matches)} match(es)")
        return matches

    def conditional_create(self, resource, url):
        """
        POSTs the resource with If-None-Exist: url=<url>.

        The server creates the resource only if no resource with that url
        exists. Returns {'created', 'status_code', 'location'}; created is
        True only for a 201 response.
        """
        target_url = f"{self.base_url}/{resource.resource_type}"
        headers = {'If-None-Exist': f"url={url}"}
        try:
            body = self.parser.encode(resource, self.encoding)
            response = self.session.post(target_url, data=body.encode('utf-8'), headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as http_err:
            raise RemoteCreateError(f"Create {resource.resource_type} {url} failed ({describe_http_error(http_err)})") from http_err
        except requests.exceptions.RequestException as req_err:
            raise RemoteCreateError(f"Create {resource.resource_type} {url} failed: {req_err}") from req_err
        except ValueError as encode_err:
            raise RemoteCreateError(f"Could not encode {resource.resource_type} {url}: {encode_err}") from encode_err

        return {
            'created': response.status_code == 201,
            'status_code': response.status_code,
            'location': response.headers.get('Location'),
        }
