"""
XSD schema-conformance validation for FA(2) / FA(3) invoices.

Schemas are compiled lazily from the bundled resources on first use and
cached per validator instance. Cross-schema imports are resolved from the
same bundle, so compilation never touches the network.

The bundled FA(2) / FA(3) schemas are reduced versions of the official
Ministry of Finance schemas published under the same namespaces. They cover
the elements the serializer writes, so a document that passes them can still
be rejected by the official schema (or by KSeF itself).
"""

import re
import threading
from enum import Enum
from importlib import resources
from io import BytesIO
from typing import BinaryIO, Optional, Union

from lxml import etree

from .config import FA2_NAMESPACE, FA3_NAMESPACE, SCHEMA_RESOURCE_DIR, logger
from .results import ValidationResult
from .schemas import Invoice
from .serializer import InvoiceXmlSerializer


class SchemaVersion(str, Enum):
    """Schema selector; AUTO detects the version from the root namespace."""
    AUTO = "auto"
    FA2 = "FA2"
    FA3 = "FA3"


SCHEMA_FILES: dict[SchemaVersion, str] = {
    SchemaVersion.FA2: "FA2.xsd",
    SchemaVersion.FA3: "FA3.xsd",
}

NAMESPACE_VERSIONS: dict[str, SchemaVersion] = {
    FA2_NAMESPACE: SchemaVersion.FA2,
    FA3_NAMESPACE: SchemaVersion.FA3,
}

DEFAULT_SCHEMA_VERSION = SchemaVersion.FA3

# Ordered: the first fragment found in the lower-cased message wins
ERROR_CODE_FRAGMENTS: list[tuple[tuple[str, ...], str]] = [
    (("required", "missing"), "XSD_REQUIRED_ELEMENT"),
    (("invalid",), "XSD_INVALID_VALUE"),
    (("pattern",), "XSD_PATTERN_MISMATCH"),
    (("length",), "XSD_LENGTH_ERROR"),
    (("enumeration",), "XSD_ENUMERATION_ERROR"),
    (("minoccurs", "maxoccurs", "not expected"), "XSD_OCCURRENCE_ERROR"),
    (("type",), "XSD_TYPE_ERROR"),
]

GENERIC_ERROR_CODE = "XSD_VALIDATION_ERROR"
WARNING_CODE = "XSD_WARNING"

NAMED_REFERENCE = re.compile(r"(?:Element|attribute) '([^']+)'")
QUOTED_TOKEN = re.compile(r"'([^']+)'")


class SchemaLoadError(RuntimeError):
    """Raised when the bundled schemas cannot be read or compiled."""


def default_schema_dir():
    """Directory holding the bundled XSD files."""
    package_root = resources.files("ksef_validator")
    for part in SCHEMA_RESOURCE_DIR.split("/"):
        package_root = package_root / part
    return package_root


def classify_schema_message(message: str) -> str:
    """Map a schema engine message to a stable XSD_* error code."""
    lowered = message.lower()
    for fragments, code in ERROR_CODE_FRAGMENTS:
        if any(fragment in lowered for fragment in fragments):
            return code
    return GENERIC_ERROR_CODE


def _local_name(name: str) -> str:
    if name.startswith("{") and "}" in name:
        return name.split("}", 1)[1]
    return name.rsplit(":", 1)[-1]


def field_from_schema_message(message: str) -> Optional[str]:
    """
    Extract the offending element or attribute name from a schema message.

    Returns the local name (namespace stripped) of the first ``Element '...'``
    or ``attribute '...'`` reference, else the first quoted token, else None.
    """
    match = NAMED_REFERENCE.search(message) or QUOTED_TOKEN.search(message)
    if match is None:
        return None
    return _local_name(match.group(1)) or None


def detect_schema_version(data: bytes) -> SchemaVersion:
    """
    Pick the schema version from the root element's namespace.

    Only the first start tag is read. Unknown namespaces and unparsable
    input fall back to FA(3).
    """
    try:
        for _, element in etree.iterparse(
            BytesIO(data), events=("start",), no_network=True, resolve_entities=False
        ):
            namespace = etree.QName(element).namespace
            return NAMESPACE_VERSIONS.get(namespace, DEFAULT_SCHEMA_VERSION)
    except etree.XMLSyntaxError:
        logger.debug("Could not read the root element; assuming FA(3)")
    return DEFAULT_SCHEMA_VERSION


class BundledSchemaResolver(etree.Resolver):
    """
    Resolves schema imports from the bundled schema directory.

    Lookups are by file name only. http(s) URLs and unknown names are passed
    through unresolved.
    """

    def __init__(self, schema_dir):
        super().__init__()
        self.schema_dir = schema_dir

    def resolve(self, url, pubid, context):
        if url is None or url.startswith(("http://", "https://")):
            return None

        file_name = url.replace("\\", "/").rsplit("/", 1)[-1]
        candidate = self.schema_dir / file_name
        if not file_name or not candidate.is_file():
            return None

        logger.debug(f"Resolving {url} from bundled schemas")
        return self.resolve_string(candidate.read_bytes(), context, base_url=file_name)


class XsdValidator:
    """
    Validates invoice XML against the bundled FA(2) / FA(3) schemas.

    Compiled schemas are built once per instance, on the first call that
    needs them. Concurrent first callers wait for a single compilation.
    """

    def __init__(self, serializer: Optional[InvoiceXmlSerializer] = None, schema_dir=None):
        self.serializer = serializer or InvoiceXmlSerializer()
        self.schema_dir = schema_dir if schema_dir is not None else default_schema_dir()

        self._schemas: dict[SchemaVersion, etree.XMLSchema] = {}
        self._validation_locks: dict[SchemaVersion, threading.Lock] = {}
        self._load_lock = threading.Lock()
        self._schemas_initialized = False

    # ========================================================================
    # Schema cache
    # ========================================================================

    @property
    def are_schemas_loaded(self) -> bool:
        return self._schemas_initialized and bool(self._schemas)

    def available_schema_versions(self) -> frozenset[SchemaVersion]:
        """Schema versions that compiled successfully (loads them if needed)."""
        self._ensure_schemas_loaded()
        return frozenset(self._schemas)

    def _ensure_schemas_loaded(self) -> None:
        if self._schemas_initialized:
            return

        with self._load_lock:
            if self._schemas_initialized:
                return

            schemas = {version: self._compile_schema(version) for version in SCHEMA_FILES}
            self._validation_locks = {version: threading.Lock() for version in schemas}
            self._schemas = schemas
            self._schemas_initialized = True

    def _compile_schema(self, version: SchemaVersion) -> etree.XMLSchema:
        file_name = SCHEMA_FILES[version]
        parser = etree.XMLParser(no_network=True, resolve_entities=False)
        parser.resolvers.add(BundledSchemaResolver(self.schema_dir))

        try:
            source = (self.schema_dir / file_name).read_bytes()
            schema_root = etree.fromstring(source, parser, base_url=file_name)
            schema = etree.XMLSchema(schema_root)
        except (OSError, etree.XMLSyntaxError, etree.XMLSchemaParseError) as e:
            raise SchemaLoadError(f"Could not load schema {file_name}: {e}") from e

        logger.info(f"Compiled {version.value} schema from {file_name}")
        return schema

    # ========================================================================
    # Validation
    # ========================================================================

    def validate_xml(
        self,
        xml: Union[str, bytes],
        schema_version: SchemaVersion = SchemaVersion.AUTO,
    ) -> ValidationResult:
        """
        Validate raw XML text against the selected schema.

        Args:
            xml: XML document as text or bytes
            schema_version: Explicit version, or AUTO to detect it from the root namespace

        Returns:
            ValidationResult with one issue per schema violation

        Raises:
            ValueError: If xml is None, empty or whitespace only
            SchemaLoadError: If the bundled schemas cannot be compiled
        """
        if xml is None or not xml.strip():
            raise ValueError("xml must not be empty")

        data = xml.encode("utf-8") if isinstance(xml, str) else xml
        return self._validate_bytes(data, schema_version)

    def validate_stream(
        self,
        stream: BinaryIO,
        schema_version: SchemaVersion = SchemaVersion.AUTO,
    ) -> ValidationResult:
        """Validate an XML document read from a binary or text stream."""
        if stream is None:
            raise ValueError("stream must not be None")

        data = stream.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        return self._validate_bytes(data, schema_version)

    def validate_against_schema(self, invoice: Invoice) -> ValidationResult:
        """
        Serialize an invoice and validate the XML against the detected schema.

        Serialization failures are reported as XSD_SERIALIZATION_ERROR.
        """
        if invoice is None:
            raise ValueError("invoice must not be None")

        try:
            data = self.serializer.serialize_to_bytes(invoice)
        except Exception as e:
            logger.warning(f"Invoice could not be serialized for schema validation: {e}")
            return ValidationResult.with_error(
                "XSD_SERIALIZATION_ERROR", f"Could not serialize invoice to XML: {e}"
            )

        return self._validate_bytes(data, SchemaVersion.AUTO)

    def _validate_bytes(self, data: bytes, schema_version: SchemaVersion) -> ValidationResult:
        result = ValidationResult()
        self._ensure_schemas_loaded()

        version = schema_version
        if version == SchemaVersion.AUTO:
            version = detect_schema_version(data)

        schema = self._schemas.get(version)
        if schema is None:
            result.add_error("XSD_SCHEMA_NOT_FOUND", f"Schema for version {version.value} is not available")
            return result

        if not data.strip():
            result.add_error("XSD_XML_ERROR", "Malformed XML: document is empty")
            return result

        parser = etree.XMLParser(no_network=True, resolve_entities=False)
        try:
            document = etree.fromstring(data, parser)
        except etree.XMLSyntaxError as e:
            line, column = e.position
            result.add_error("XSD_XML_ERROR", f"Malformed XML: {e.msg} (line {line}, column {column})")
            return result

        # The schema's error log is shared state, so validate and read it together
        with self._validation_locks[version]:
            schema.validate(document)
            entries = list(schema.error_log)

        for entry in entries:
            self._add_log_entry(entry, result)

        return result

    @staticmethod
    def _add_log_entry(entry, result: ValidationResult) -> None:
        message = entry.message
        if entry.line > 0:
            message = f"{message} (line {entry.line}, column {entry.column})"
        field_name = field_from_schema_message(entry.message)

        if entry.level == etree.ErrorLevels.WARNING:
            result.add_warning(WARNING_CODE, message, field_name)
        else:
            result.add_error(classify_schema_message(entry.message), message, field_name)
