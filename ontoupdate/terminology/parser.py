import json
import logging
import importlib
import xml.etree.ElementTree as ET

logger = logging.getLogger(__name__)

# fhir.resources ships one model package per FHIR release
FHIR_RELEASE_PACKAGES = {
    'STU3': 'fhir.resources.STU3',
    'R4B': 'fhir.resources.R4B',
    'R5': 'fhir.resources',
}

ENCODINGS = ('json', 'xml')


class ResourceParser:
    """Turns JSON/XML content into fhir.resources models for one FHIR release."""

    def __init__(self, fhir_release='STU3'):
        release = str(fhir_release).upper()
        package = FHIR_RELEASE_PACKAGES.get(release)
        if not package:
            raise ValueError(f"Unsupported FHIR release '{fhir_release}'. Expected one of: {', '.join(FHIR_RELEASE_PACKAGES)}")
        self.fhir_release = release
        self.models = importlib.import_module(package)

    def model_class(self, resource_type):
        return self.models.get_fhir_model_class(resource_type)

    def parse_json(self, content):
        """Parses a single JSON resource (str, bytes or dict)."""
        if isinstance(content, (bytes, bytearray)):
            content = content.decode('utf-8-sig')
        data = json.loads(content) if isinstance(content, str) else content
        if not isinstance(data, dict) or not data.get('resourceType'):
            raise ValueError("Content is not a FHIR resource (missing resourceType)")
        return self.models.construct_fhir_element(data['resourceType'], data)

    def parse_xml(self, content):
        """Parses a single XML resource; the root tag selects the model."""
        if isinstance(content, str):
            content = content.encode('utf-8')
        try:
            root = ET.fromstring(content)
            # Strip the FHIR namespace: {http://hl7.org/fhir}Bundle -> Bundle
            resource_type = root.tag.split('}', 1)[-1]
            return self.model_class(resource_type).parse_raw(content, content_type='text/xml')
        except SyntaxError as e:
            # ElementTree and lxml both report malformed XML as SyntaxError subclasses
            raise ValueError(f"Invalid XML: {e}") from e

    def parse(self, content, encoding):
        if encoding == 'xml':
            return self.parse_xml(content)
        if encoding == 'json':
            return self.parse_json(content)
        raise ValueError(f"Unsupported encoding '{encoding}'")

    def parse_bundle(self, content, encoding):
        bundle = self.parse(content, encoding)
        if bundle.resource_type != 'Bundle':
            raise ValueError(f"Expected a Bundle, got {bundle.resource_type}")
        return bundle

    def encode(self, resource, encoding):
        """Serializes a resource to text; None-valued elements are left out."""
        if encoding == 'xml':
            content = resource.xml()
        elif encoding == 'json':
            content = resource.json()
        else:
            raise ValueError(f"Unsupported encoding '{encoding}'")
        if isinstance(content, bytes):
            content = content.decode('utf-8')
        return content
