"""Erros de dominio compartilhados entre servicos e rotas.

Os routers nao capturam estes erros: os handlers registrados em
``mktops.main`` convertem cada um na resposta HTTP correspondente.
"""

PERSISTENCE_MESSAGES = {
    "schema_mismatch": "ERRO DE SISTEMA: Banco desatualizado. Contate suporte.",
    "invalid_value": "ERRO DE DADOS: Campo invalido enviado.",
    "conflict": "ERRO DE DADOS: Registro duplicado.",
    "not_null": "ERRO DE DADOS: Campo obrigatorio ausente.",
    "foreign_key": "ERRO DE DADOS: Referencia inexistente.",
}


class ConfigurationError(Exception):
    pass


class RecordNotFound(Exception):
    def __init__(self, table: str, record_id: str | None = None) -> None:
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} {record_id} nao encontrado")


class PermissionDenied(Exception):
    def __init__(self, message: str = "Permissao negada") -> None:
        self.message = message
        super().__init__(message)


class DemandValidationError(Exception):
    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            "Por favor, preencha os campos obrigatorios (Titulo, Tipo, Prazo)."
        )


class PersistenceError(Exception):
    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    @property
    def is_known(self) -> bool:
        return self.code in PERSISTENCE_MESSAGES

    @property
    def user_message(self) -> str:
        return PERSISTENCE_MESSAGES.get(self.code, f"Erro ao salvar: {self.message}")


def classify_db_error(exc: Exception) -> str:
    """Codigo estavel a partir da mensagem do driver (sqlite/postgres)."""
    text = str(getattr(exc, "orig", exc)).lower()
    if "unique" in text or "duplicate" in text:
        return "conflict"
    if "not null" in text:
        return "not_null"
    if "foreign key" in text:
        return "foreign_key"
    if "no such column" in text or "has no column" in text or "undefinedcolumn" in text or (
        "column" in text and "does not exist" in text
    ):
        return "schema_mismatch"
    if "invalid input" in text or "datatype mismatch" in text:
        return "invalid_value"
    return "unknown"
