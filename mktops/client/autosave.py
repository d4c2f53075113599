import logging
import threading
from typing import Any, Callable

import httpx

from mktops.client.api import ClientError
from mktops.core.config import settings

logger = logging.getLogger("mktops.client")

SAVED_MESSAGE = "Alteração salva"
ERROR_MESSAGE = "Erro ao salvar automaticamente"


class FieldAutoSaver:
    """Auto-save por campo.

    Texto espera ``delay`` segundos sem nova edicao antes de salvar; so o
    ultimo valor da janela e enviado. Outros tipos salvam na hora. Cada
    campo tem um contador de geracao: a resposta de uma gravacao antiga
    nao dispara ``on_saved`` se ja houve edicao mais nova.
    """

    def __init__(
        self,
        save: Callable[[str, Any], Any],
        delay: float | None = None,
        on_saved: Callable[[str, Any], None] | None = None,
        on_error: Callable[[str, Exception], None] | None = None,
        timer_factory=threading.Timer,
    ) -> None:
        self.save = save
        self.delay = settings.AUTOSAVE_DEBOUNCE_MS / 1000 if delay is None else delay
        self.on_saved = on_saved
        self.on_error = on_error
        self.timer_factory = timer_factory
        self.last_message: str | None = None
        self._lock = threading.Lock()
        self._timers: dict[str, Any] = {}
        self._pending: dict[str, tuple[int, Any]] = {}
        self._generations: dict[str, int] = {}
        self._closed = False

    def edit(self, field: str, value: Any) -> None:
        debounce = isinstance(value, str)
        payload = None if value == "" else value
        with self._lock:
            if self._closed:
                return
            generation = self._generations.get(field, 0) + 1
            self._generations[field] = generation
            previous = self._timers.pop(field, None)
            if previous is not None:
                previous.cancel()
            self._pending.pop(field, None)
            if debounce:
                self._pending[field] = (generation, payload)
                timer = self.timer_factory(self.delay, self._fire, args=(field, generation))
                timer.daemon = True
                self._timers[field] = timer
        if debounce:
            timer.start()
        else:
            self._run(field, generation, payload)

    def _fire(self, field: str, generation: int) -> None:
        with self._lock:
            pending = self._pending.get(field)
            if pending is None or pending[0] != generation:
                return
            self._pending.pop(field)
            self._timers.pop(field, None)
        self._run(field, generation, pending[1])

    def _run(self, field: str, generation: int, value: Any) -> None:
        try:
            result = self.save(field, value)
        except (ClientError, httpx.HTTPError) as exc:
            logger.warning("auto-save falhou field=%s: %s", field, exc)
            self.last_message = ERROR_MESSAGE
            if self.on_error:
                self.on_error(field, exc)
            return
        with self._lock:
            current = not self._closed and self._generations.get(field) == generation
        if current:
            self.last_message = SAVED_MESSAGE
            if self.on_saved:
                self.on_saved(field, result)

    def pending_fields(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def flush(self) -> None:
        with self._lock:
            pending = dict(self._pending)
            self._pending.clear()
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
        for field, (generation, value) in pending.items():
            self._run(field, generation, value)

    def cancel(self) -> None:
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()

    def close(self) -> None:
        self.cancel()
        with self._lock:
            self._closed = True
