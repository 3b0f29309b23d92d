"""Error codes shared by the CEP-47 command-line client."""

from __future__ import annotations

ERR_INTERNAL = "INTERNAL"
ERR_INVALID_ARGUMENT = "INVALID_ARGUMENT"
ERR_INVALID_CONFIG = "INVALID_CONFIG"
ERR_CONTRACT_HASH_REQUIRED = "CONTRACT_HASH_REQUIRED"
ERR_KEY_FILE_NOT_FOUND = "KEY_FILE_NOT_FOUND"
ERR_RPC_TRANSPORT = "RPC_TRANSPORT_ERROR"
ERR_RPC_TIMEOUT = "RPC_TIMEOUT"
ERR_RPC_REMOTE = "RPC_REMOTE_ERROR"
ERR_DEPLOY_FAILED = "DEPLOY_FAILED"
ERR_EVENT_STREAM_FAILED = "EVENT_STREAM_FAILED"

# Codes caused by the caller's input; everything else is a runtime failure.
INPUT_ERROR_CODES = frozenset(
    {
        ERR_INVALID_ARGUMENT,
        ERR_INVALID_CONFIG,
        ERR_CONTRACT_HASH_REQUIRED,
        ERR_KEY_FILE_NOT_FOUND,
    }
)

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_INPUT_ERROR = 2


class Cep47Error(Exception):
    """Failure carrying a stable error code for CLI rendering."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        hint: str | None = None,
        rpc_response: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.hint = hint
        self.rpc_response = rpc_response

    @property
    def exit_code(self) -> int:
        if self.code in INPUT_ERROR_CODES:
            return EXIT_INPUT_ERROR
        return EXIT_RUNTIME_ERROR
