# ==============================================================================
# SERVICIO DE TIEMPO REAL
# ==============================================================================
# Escucha los cambios de las tablas products, sales y sale_items (tres
# suscripciones independientes) y avisa a las páginas abiertas.
#
#   Backend ──(canal realtime)──► RealtimeListener (hilo daemon + asyncio)
#                                        │
#                                        ▼
#                                  RealtimeHub.publish()
#                                        │
#                       ┌────────────────┼────────────────┐
#                       ▼                ▼                ▼
#                    Queue            Queue            Queue    (una por navegador)
#                       │
#                       ▼
#                 /api/realtime (server-sent events)
#
# El evento solo indica QUÉ vistas dependen de la tabla: cada página vuelve
# a pedir todos sus datos (no hay actualizaciones incrementales).
# ==============================================================================

import asyncio
import json
import logging
import queue
import threading
import time
from typing import Any, Dict, Iterator, List, Optional, Tuple

from supabase import acreate_client

logger = logging.getLogger(__name__)

# Vistas que deben refrescarse cuando cambia cada tabla
TABLE_VIEWS = {
    'products': ('dashboard', 'products', 'reports'),
    'sales': ('dashboard', 'sales', 'reports'),
    'sale_items': ('dashboard', 'reports'),
}

# Segundos sin eventos antes de enviar un keepalive al navegador
KEEPALIVE_SECONDS = 15

# Duración máxima de un stream; el navegador se reconecta solo (retry)
MAX_STREAM_SECONDS = 300

# Eventos pendientes por navegador antes de descartar los más nuevos
MAX_QUEUE_SIZE = 100


def _event_type(payload: Dict[str, Any]) -> str:
    """Tipo del cambio (INSERT/UPDATE/DELETE) en cualquiera de los formatos del SDK."""
    event = payload.get('eventType') or (payload.get('data') or {}).get('type') or ''
    return str(getattr(event, 'value', event)).upper()


class RealtimeHub:
    """
    Distribuye eventos de cambio a los navegadores suscritos.

    Cada suscriptor es una Queue; publish() nunca bloquea.
    """

    def __init__(self):
        self._subscribers: List[Tuple[queue.Queue, Optional[str]]] = []
        self._lock = threading.Lock()
        self._listeners: Dict[str, 'RealtimeListener'] = {}

    # =========================================================================
    # SUSCRIPTORES
    # =========================================================================

    def subscribe(self, project: str = None) -> queue.Queue:
        """
        Registra un suscriptor.

        Args:
            project: URL del proyecto que interesa (None = todos)
        """
        q = queue.Queue(maxsize=MAX_QUEUE_SIZE)
        with self._lock:
            self._subscribers.append((q, project))
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers = [(s, p) for s, p in self._subscribers if s is not q]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Dict[str, Any]) -> int:
        """
        Entrega un evento a los suscriptores del proyecto.

        Returns:
            Cantidad de suscriptores que lo recibieron
        """
        with self._lock:
            targets = [q for q, project in self._subscribers
                       if project is None or project == event.get('project')]

        delivered = 0
        for q in targets:
            try:
                q.put_nowait(event)
                delivered += 1
            except queue.Full:
                logger.warning("Cola de tiempo real llena; evento descartado")
        return delivered

    def handle_change(self, table: str, payload: Dict[str, Any], project: str = None) -> Optional[Dict[str, Any]]:
        """
        Convierte un cambio del backend en evento para las vistas.

        Returns:
            El evento publicado, o None si la tabla no interesa
        """
        views = TABLE_VIEWS.get(table)
        if views is None:
            return None
        event = {
            'table': table,
            'event': _event_type(payload or {}),
            'views': list(views),
            'project': project,
        }
        self.publish(event)
        return event

    # =========================================================================
    # SERVER-SENT EVENTS
    # =========================================================================

    def stream(self, project: str = None, timeout: float = KEEPALIVE_SECONDS,
               max_events: int = None, max_seconds: float = MAX_STREAM_SECONDS) -> Iterator[str]:
        """
        Genera el cuerpo de /api/realtime.

        Cada stream ocupa un hilo del servidor mientras dura, por eso termina
        a los `max_seconds` y el navegador abre otro.

        Args:
            project: Proyecto del usuario
            timeout: Segundos entre keepalives
            max_events: Corta el stream tras N eventos (None = sin límite)
            max_seconds: Corta el stream tras N segundos (None = sin límite)
        """
        q = self.subscribe(project)
        sent = 0
        deadline = time.monotonic() + max_seconds if max_seconds is not None else None
        try:
            yield 'retry: 5000\n\n'
            while max_events is None or sent < max_events:
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    wait = min(timeout, remaining)
                else:
                    wait = timeout
                try:
                    event = q.get(timeout=wait)
                except queue.Empty:
                    yield ': keepalive\n\n'
                    continue
                data = {k: v for k, v in event.items() if k != 'project'}
                yield f"event: change\ndata: {json.dumps(data)}\n\n"
                sent += 1
        finally:
            self.unsubscribe(q)

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def ensure_listener(self, url: str, key: str) -> 'RealtimeListener':
        """Arranca (una sola vez por proyecto) el listener del backend."""
        with self._lock:
            listener = self._listeners.get(url)
            if listener is None or not listener.is_alive():
                listener = RealtimeListener(self, url, key)
                self._listeners[url] = listener
                listener.start()
        return listener


class RealtimeListener(threading.Thread):
    """
    Hilo daemon con su propio event loop que mantiene los canales abiertos.
    """

    def __init__(self, hub: RealtimeHub, url: str, key: str, tables=None):
        super().__init__(name=f'realtime-{url}', daemon=True)
        self.hub = hub
        self.url = url
        self.key = key
        self.tables = tuple(tables or TABLE_VIEWS)

    def run(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._listen())
        except Exception:
            logger.exception("El listener de tiempo real de %s terminó con error", self.url)
        finally:
            loop.close()

    def _callback(self, table: str):
        def on_change(payload):
            self.hub.handle_change(table, payload, project=self.url)
        return on_change

    async def subscribe(self, client) -> List[Any]:
        """
        Abre un canal por tabla sobre el cliente asíncrono del SDK.

        Returns:
            Los canales suscritos
        """
        channels = []
        for table in self.tables:
            channel = client.channel(f'{table}-changes')
            channel.on_postgres_changes(
                '*', schema='public', table=table, callback=self._callback(table)
            )
            await channel.subscribe()
            channels.append(channel)
            logger.info("Suscrito a cambios de %s en %s", table, self.url)
        return channels

    async def _listen(self):
        client = await acreate_client(self.url, self.key)
        await self.subscribe(client)
        # Los canales viven hasta que termina el proceso (hilo daemon)
        await asyncio.Event().wait()
