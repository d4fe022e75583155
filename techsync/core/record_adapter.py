"""
Record Adapter - maps catalogue records from the source schema to the target schema

Handles field exclusion, identifier conversion between ID spaces and typed
payload validation. Pure data transformation: no I/O happens here.
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, Field, ValidationError

from techsync.core.exceptions import PayloadValidationError
from techsync.core.models import SyncOperation


# Wire contract: changing the namespace or the name format breaks matching
# of every integer-keyed record synced so far. Bump the version with a
# migration plan, never in place.
ID_SCHEME_VERSION = 1
ID_NAMESPACE = uuid.UUID('6f1c3b9e-5a47-5d2c-9b1e-7a3e2d4c8f10')


class KeyType(Enum):
    """Primary key type of a table in the source system"""
    UUID = "uuid"
    INTEGER = "integer"
    TEXT = "text"


# Payload schemas

class RecordSchema(BaseModel):
    """Any synced record: only the primary key is mandatory"""
    id: Union[str, int]

    class Config:
        extra = 'allow'


class TechnologyRecord(RecordSchema):
    nombre: str = Field(..., min_length=1)
    trl: Optional[int] = None
    tipos: Optional[List[str]] = None
    subcategorias: Optional[List[str]] = None
    categorias: Optional[List[str]] = None


class TaxonomyRecord(RecordSchema):
    nombre: str = Field(..., min_length=1)
    codigo: Optional[str] = None


class SubcategoriaRecord(TaxonomyRecord):
    tipo_id: Optional[Union[int, str]] = None


class DeleteRecord(RecordSchema):
    reason: Optional[str] = None


@dataclass
class TableConfig:
    """Static mapping rules for one table"""
    name: str
    key_type: KeyType = KeyType.UUID
    excluded_fields: List[str] = field(default_factory=list)
    required_fields: List[str] = field(default_factory=list)
    schema: Type[RecordSchema] = RecordSchema

    @property
    def converts_ids(self) -> bool:
        return self.key_type is KeyType.INTEGER


DEFAULT_TABLES: Dict[str, TableConfig] = {
    'technologies': TableConfig(
        name='technologies',
        excluded_fields=[
            'tipo_id', 'subcategoria_id', 'sector_id', 'subsector_industrial',
            'quality_score', 'review_status', 'review_requested_at',
            'review_requested_by', 'reviewed_at', 'reviewer_id'
        ],
        schema=TechnologyRecord
    ),
    'taxonomy_tipos': TableConfig(
        name='taxonomy_tipos', key_type=KeyType.INTEGER, schema=TaxonomyRecord
    ),
    'taxonomy_subcategorias': TableConfig(
        name='taxonomy_subcategorias', key_type=KeyType.INTEGER, schema=SubcategoriaRecord
    ),
    'taxonomy_sectores': TableConfig(
        name='taxonomy_sectores', key_type=KeyType.TEXT, schema=TaxonomyRecord
    ),
    'casos_de_estudio': TableConfig(name='casos_de_estudio'),
    'technological_trends': TableConfig(name='technological_trends'),
    'projects': TableConfig(
        name='projects',
        excluded_fields=['created_by', 'client_id', 'responsible_user_id']
    ),
    'project_technologies': TableConfig(
        name='project_technologies',
        excluded_fields=['added_by']
    ),
}


def integer_to_uuid(table: str, value: Union[int, str]) -> str:
    """
    Derive the target UUID for an integer key.

    Equivalent SQL on the target side:
        uuid_generate_v5('<ID_NAMESPACE>', '<table>:' || id::text)
    """
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise PayloadValidationError(f"expected an integer key, got {value!r}", table=table, field='id')
    if isinstance(value, bool) or str(number) != str(value).strip():
        raise PayloadValidationError(f"expected an integer key, got {value!r}", table=table, field='id')
    return str(uuid.uuid5(ID_NAMESPACE, f"{table}:{number}"))


class RecordAdapter:
    """Produces target-compatible payloads and identifiers"""

    def __init__(self, tables: Optional[Dict[str, TableConfig]] = None):
        self.tables = dict(DEFAULT_TABLES if tables is None else tables)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_table_settings(cls, overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> 'RecordAdapter':
        """Merge per-table configuration (the `tables` config section) over the defaults"""
        tables = {name: copy.deepcopy(cfg) for name, cfg in DEFAULT_TABLES.items()}

        for name, data in (overrides or {}).items():
            data = data or {}
            current = tables.get(name) or TableConfig(name=name)
            if 'key_type' in data:
                try:
                    current.key_type = KeyType(str(data['key_type']).lower())
                except ValueError:
                    raise ValueError(f"Invalid key_type '{data['key_type']}' for table {name}")
            if 'excluded_fields' in data:
                current.excluded_fields = list(data['excluded_fields'] or [])
            if 'required_fields' in data:
                current.required_fields = list(data['required_fields'] or [])
            tables[name] = current

        return cls(tables)

    def table_config(self, table: str) -> TableConfig:
        """Unknown tables behave as UUID-keyed with no exclusions"""
        return self.tables.get(table) or TableConfig(name=table)

    def clean_payload(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of record without the fields the target does not own"""
        excluded = set(self.table_config(table).excluded_fields)
        return {key: copy.deepcopy(value) for key, value in record.items() if key not in excluded}

    def convert_id(self, table: str, raw_id: Union[str, int]) -> str:
        """Map a source key into the target ID space"""
        if raw_id is None or str(raw_id).strip() == "":
            raise PayloadValidationError("missing record id", table=table, field='id')

        if self.table_config(table).converts_ids:
            return integer_to_uuid(table, raw_id)
        return str(raw_id)

    def adapt(self, table: str, record: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        """Clean a full source record and move its key into the target ID space"""
        if 'id' not in record:
            raise PayloadValidationError("record has no id", table=table, field='id')

        target_id = self.convert_id(table, record['id'])
        payload = self.clean_payload(table, record)
        payload['id'] = target_id
        return target_id, payload

    def validate(self, table: str, operation: SyncOperation, record_id: str,
                 payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Check a queue payload against the table schema.

        Inserts and upserts need a complete record; updates may be partial
        changes; deletes only need the key.
        """
        if not table:
            raise PayloadValidationError("table name is required")
        if record_id is None or str(record_id).strip() == "":
            raise PayloadValidationError("record_id is required", table=table, field='record_id')
        if not isinstance(payload, dict):
            raise PayloadValidationError("payload must be an object", table=table, field='payload')

        payload_id = payload.get('id')
        if payload_id is not None and str(payload_id) != str(record_id):
            raise PayloadValidationError(
                f"payload id {payload_id!r} does not match record_id {record_id!r}",
                table=table, field='id'
            )

        config = self.table_config(table)

        if operation.is_delete:
            self._check_schema(DeleteRecord, table, {**payload, 'id': record_id})
            return payload

        if operation.is_partial:
            # Partial changes: the key is mandatory, the table's required fields are not
            self._check_schema(RecordSchema, table, payload)
            return payload

        self._check_schema(config.schema, table, payload)
        for field_name in config.required_fields:
            value = payload.get(field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise PayloadValidationError("required field missing", table=table, field=field_name)

        return payload

    def _check_schema(self, schema: Type[RecordSchema], table: str, payload: Dict[str, Any]):
        try:
            schema.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get('loc', ()))
            raise PayloadValidationError(first.get('msg', str(e)), table=table, field=location or None)
