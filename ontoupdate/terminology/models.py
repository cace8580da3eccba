import enum
import logging

logger = logging.getLogger(__name__)


class ResourceKind(enum.Enum):
    """Resource types the loaders tell apart."""
    CODE_SYSTEM = 'CodeSystem'
    VALUE_SET = 'ValueSet'
    STRUCTURE_DEFINITION = 'StructureDefinition'
    OTHER = 'Other'

    @classmethod
    def of(cls, resource):
        """Maps a parsed resource (or a resourceType string) to its kind."""
        resource_type = resource if isinstance(resource, str) else getattr(resource, 'resource_type', None)
        for kind in cls:
            if kind.value == resource_type and kind is not cls.OTHER:
                return kind
        return cls.OTHER

    @property
    def is_terminology(self):
        return self in (ResourceKind.CODE_SYSTEM, ResourceKind.VALUE_SET)


TERMINOLOGY_KINDS = (ResourceKind.CODE_SYSTEM, ResourceKind.VALUE_SET)


def is_blank(value):
    """True for None, empty and whitespace-only strings."""
    return value is None or not str(value).strip()


def clear_narrative(resource):
    """Drops the text narrative from a parsed resource to keep payloads small."""
    if getattr(resource, 'text', None) is not None:
        logger.debug(f"Removing narrative text from {resource.resource_type} {getattr(resource, 'url', None)}")
        resource.text = None
    return resource


class ResourceStore:
    """
    Working set of CodeSystems and ValueSets keyed by canonical URL.

    One store is built per run, filled by the archive and baseline loaders,
    and read by the reconciliation step. A later insert for the same URL
    replaces the earlier one.
    """

    def __init__(self):
        self.code_systems = {}
        self.value_sets = {}
        self.load_errors = []

    def __len__(self):
        return len(self.code_systems) + len(self.value_sets)

    def __repr__(self):
        return f"<ResourceStore code_systems={len(self.code_systems)} value_sets={len(self.value_sets)}>"

    def mapping_for(self, kind):
        if kind is ResourceKind.CODE_SYSTEM:
            return self.code_systems
        if kind is ResourceKind.VALUE_SET:
            return self.value_sets
        raise ValueError(f"No mapping for resource kind {kind}")

    def add(self, resource):
        """
        Classifies a parsed resource and stores it under its URL.

        Returns True if the resource was stored. StructureDefinitions and any
        other non-terminology resources are dropped, as are terminology
        resources without a usable URL.
        """
        kind = ResourceKind.of(resource)
        if kind is ResourceKind.STRUCTURE_DEFINITION:
            logger.debug(f"Skipping StructureDefinition {getattr(resource, 'url', None)}")
            return False
        if kind is ResourceKind.OTHER:
            logger.debug(f"Ignoring resource of type {getattr(resource, 'resource_type', None)}")
            return False

        url = getattr(resource, 'url', None)
        if is_blank(url):
            logger.debug(f"Skipping {kind.value} without url (id: {getattr(resource, 'id', None)})")
            return False

        mapping = self.mapping_for(kind)
        if url in mapping:
            logger.debug(f"Replacing {kind.value} {url}")
        mapping[url] = resource
        return True

    def record_error(self, source, error, level='error'):
        self.load_errors.append({'source': source, 'error': str(error), 'level': level})

    def merge(self, other):
        """Copies other's entries into this store; other wins on URL collisions."""
        self.code_systems.update(other.code_systems)
        self.value_sets.update(other.value_sets)
        self.load_errors.extend(other.load_errors)
        return self

    def items(self, kind):
        return list(self.mapping_for(kind).items())
