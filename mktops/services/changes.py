import logging
import threading
from collections import defaultdict
from typing import Callable

logger = logging.getLogger("mktops.changes")

ChangeCallback = Callable[[str], None]


class ChangeBus:
    """Sinal opaco de "algo mudou" por tabela.

    Cada escrita confirmada incrementa a versao da tabela e avisa os
    assinantes. Quem consome deve recarregar a tabela inteira; nenhum
    diff e entregue.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._versions: dict[str, int] = defaultdict(int)
        self._counter = 0
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers[table].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return _unsubscribe

    def publish(self, table: str) -> int:
        with self._lock:
            self._counter += 1
            self._versions[table] = self._counter
            callbacks = list(self._subscribers.get(table, []))
            version = self._counter
        for callback in callbacks:
            try:
                callback(table)
            except Exception:
                logger.exception("Falha no assinante de mudancas table=%s", table)
        return version

    def version(self) -> int:
        with self._lock:
            return self._counter

    def changed_since(self, since: int) -> dict[str, int]:
        with self._lock:
            return {table: version for table, version in self._versions.items() if version > since}


change_bus = ChangeBus()


def get_change_bus() -> ChangeBus:
    return change_bus
