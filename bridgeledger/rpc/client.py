"""
JSON-RPC 2.0 client

Thin async client over httpx used to reach an EVM node. JSON-RPC error
objects are translated into bridge-ledger exceptions at this seam so the
rest of the code never sees transport-specific errors.
"""

import itertools
import json
import time
from enum import IntEnum
from typing import Any, Dict, List, Optional

import httpx

from ..constants import LOG_INCLUDE_REQUEST_CONTENT, LOG_INCLUDE_RESPONSE_CONTENT
from ..exceptions import (
    ContractRevertError,
    TransportError,
    UserRejectedError,
)
from ..logger import get_logger

logger = get_logger(__name__)


class RPCErrorCode(IntEnum):
    """JSON-RPC 2.0 and EIP-1193/1474 error codes the client cares about."""

    # Standard errors
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (-32000 to -32099)
    SERVER_ERROR = -32000
    RESOURCE_UNAVAILABLE = -32002
    TRANSACTION_REJECTED = -32003
    LIMIT_EXCEEDED = -32005

    # Ethereum-specific errors
    EXECUTION_REVERTED = 3

    # EIP-1193 provider errors
    USER_REJECTED = 4001
    UNAUTHORIZED = 4100


def _is_revert(code: Optional[int], message: str) -> bool:
    return code == RPCErrorCode.EXECUTION_REVERTED or "revert" in message.lower()


class JsonRpcClient:
    """
    Async JSON-RPC client.

    Args:
        url: Node endpoint
        timeout: Per-request timeout (seconds)
        client: Optional pre-built httpx.AsyncClient (tests inject one with a
            MockTransport); otherwise one is created and owned here
    """

    def __init__(
        self,
        url: str,
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "JsonRpcClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Issue one JSON-RPC request and return its ``result``.

        Raises:
            TransportError: network failure, HTTP error, malformed response
                or any JSON-RPC error not mapped below
            UserRejectedError: provider code 4001
            ContractRevertError: execution reverted
        """
        request_id = next(self._ids)
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": request_id,
        }
        body = f"\n\nOutgoing Request:\n\"{json.dumps(payload)}\"\n" if LOG_INCLUDE_REQUEST_CONTENT else ""
        logger.debug(f"--> \"{method}\" #{request_id}{body}")

        start_time = time.time()
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            process_time = time.time() - start_time
            logger.warning(f"<-- \"{method}\" #{request_id} NETWORK_ERROR timeout ({process_time:.3f}s)")
            raise TransportError(f"{method}: timed out") from e
        except httpx.RequestError as e:
            process_time = time.time() - start_time
            logger.warning(f"<-- \"{method}\" #{request_id} NETWORK_ERROR ({process_time:.3f}s): {e}")
            raise TransportError(f"{method}: {e}") from e
        except httpx.HTTPStatusError as e:
            process_time = time.time() - start_time
            logger.warning(
                f"<-- \"{method}\" #{request_id} {e.response.status_code} ERROR ({process_time:.3f}s)"
            )
            raise TransportError(f"{method}: HTTP {e.response.status_code}") from e
        except ValueError as e:
            raise TransportError(f"{method}: response is not JSON") from e

        process_time = time.time() - start_time
        if not isinstance(data, dict):
            raise TransportError(f"{method}: unexpected response {type(data).__name__}")

        error = data.get("error")
        if error is not None:
            self._raise_rpc_error(method, error)

        result = data.get("result")
        response_body = f"\n\nIncoming Response:\n\"{json.dumps(result)}\"\n" if LOG_INCLUDE_RESPONSE_CONTENT else ""
        logger.debug(f"<-- \"{method}\" #{request_id} OK ({process_time:.3f}s){response_body}")
        return result

    @staticmethod
    def _raise_rpc_error(method: str, error: Dict[str, Any]) -> None:
        code = error.get("code") if isinstance(error, dict) else None
        message = str(error.get("message", "")) if isinstance(error, dict) else str(error)
        data = error.get("data") if isinstance(error, dict) else None

        if code == RPCErrorCode.USER_REJECTED:
            raise UserRejectedError(f"{method}: {message or 'user rejected the request'}")
        if _is_revert(code, message):
            reason = data if isinstance(data, str) else message
            raise ContractRevertError(f"{method}: {message}", reason=reason)
        raise TransportError(f"{method}: RPC error {code}: {message}", code=code, data=data)

    # ── eth_* helpers ───────────────────────────────────────────────

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    async def eth_send_transaction(self, sender: str, to: str, data: str) -> str:
        return await self.call("eth_sendTransaction", [{"from": sender, "to": to, "data": data}])

    async def eth_get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])
