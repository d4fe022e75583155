"""
Typed settings for the sync components.

The worker, reconciler and gateway receive a SyncSettings instance at
construction time instead of reading URLs or secrets from module globals.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from techsync.config.config_loader import default_config


QUEUE_MODES = ('on_failure', 'always', 'never')


@dataclass
class EndpointSettings:
    """Connection settings for one datastore"""
    url: str = ""
    key: str = ""
    sync_url: str = ""
    sync_secret: str = ""
    page_size: int = 1000
    timeout: float = 30
    verify_ssl: bool = True


@dataclass
class QueueSettings:
    max_attempts: int = 5
    retry_delays: List[int] = field(default_factory=lambda: [60, 300, 900, 3600, 14400])
    stale_timeout_seconds: int = 600


@dataclass
class WorkerSettings:
    batch_size: int = 10
    dead_letter_client_errors: bool = True


@dataclass
class ReconcilerSettings:
    tables: List[str] = field(default_factory=list)
    fetch_chunk_size: int = 200


@dataclass
class GatewaySettings:
    queue_mode: str = 'on_failure'


@dataclass
class SyncSettings:
    """Explicit configuration passed into each sync component"""
    database_url: str = 'sqlite+aiosqlite:///./data/techsync.db'
    database_echo: bool = False
    source: EndpointSettings = field(default_factory=EndpointSettings)
    target: EndpointSettings = field(default_factory=EndpointSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    reconciler: ReconcilerSettings = field(default_factory=ReconcilerSettings)
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    tables: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> 'SyncSettings':
        """Build settings from a load_config() dictionary"""
        defaults = default_config()
        config = config or {}

        def section(name: str) -> Dict[str, Any]:
            merged = dict(defaults.get(name, {}))
            merged.update(config.get(name) or {})
            return merged

        queue = section('queue')
        worker = section('worker')
        reconciler = section('reconciler')
        gateway = section('gateway')

        queue_mode = gateway.get('queue_mode', 'on_failure')
        if queue_mode not in QUEUE_MODES:
            raise ValueError(f"Invalid gateway.queue_mode '{queue_mode}', expected one of {QUEUE_MODES}")

        retry_delays = [int(d) for d in queue.get('retry_delays') or []]
        if not retry_delays:
            raise ValueError("queue.retry_delays must contain at least one delay")

        return cls(
            database_url=section('database').get('url'),
            database_echo=_as_bool(section('database').get('echo', False), 'database.echo'),
            source=_endpoint(section('source')),
            target=_endpoint(section('target')),
            queue=QueueSettings(
                max_attempts=int(queue['max_attempts']),
                retry_delays=retry_delays,
                stale_timeout_seconds=int(queue['stale_timeout_seconds'])
            ),
            worker=WorkerSettings(
                batch_size=int(worker['batch_size']),
                dead_letter_client_errors=_as_bool(
                    worker['dead_letter_client_errors'], 'worker.dead_letter_client_errors'
                )
            ),
            reconciler=ReconcilerSettings(
                tables=list(reconciler.get('tables') or []),
                fetch_chunk_size=int(reconciler['fetch_chunk_size'])
            ),
            gateway=GatewaySettings(queue_mode=queue_mode),
            tables=dict(config.get('tables') or {})
        )


def _endpoint(data: Dict[str, Any]) -> EndpointSettings:
    return EndpointSettings(
        url=(data.get('url') or '').rstrip('/'),
        key=data.get('key') or '',
        sync_url=data.get('sync_url') or '',
        sync_secret=data.get('sync_secret') or '',
        page_size=int(data.get('page_size', 1000)),
        timeout=float(data.get('timeout', 30)),
        verify_ssl=_as_bool(data.get('verify_ssl', True), 'verify_ssl')
    )


_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off', '')


def _as_bool(value: Any, name: str) -> bool:
    """YAML booleans pass through; strings from env or overrides are parsed"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")
