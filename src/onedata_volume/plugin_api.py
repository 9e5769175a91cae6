"""
Docker volume plugin protocol dispatch.

Maps protocol endpoints to VolumeDriver operations and builds the JSON
response bodies. Binding the Unix socket and HTTP framing are left to the
host process; handle() is what it calls for every request.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional, Union

from .driver import VolumeDriver, VolumeResponse

logger = logging.getLogger(__name__)


Body = Union[bytes, str, Dict[str, Any], None]


class VolumePluginAPI:
    """Request dispatcher for the /VolumeDriver.* endpoints."""

    def __init__(self, driver: VolumeDriver):
        self.driver = driver
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "/Plugin.Activate": self.handle_activate,
            "/VolumeDriver.Create": self.handle_create,
            "/VolumeDriver.Remove": self.handle_remove,
            "/VolumeDriver.Mount": self.handle_mount,
            "/VolumeDriver.Unmount": self.handle_unmount,
            "/VolumeDriver.Path": self.handle_path,
            "/VolumeDriver.Get": self.handle_get,
            "/VolumeDriver.List": self.handle_list,
            "/VolumeDriver.Capabilities": self.handle_capabilities,
        }

    @property
    def endpoints(self):
        return sorted(self._handlers)

    def handle(self, endpoint: str, body: Body = None) -> Dict[str, Any]:
        """
        Dispatch one request.

        Args:
            endpoint: Request path, e.g. "/VolumeDriver.Mount"
            body: Raw JSON body, or an already decoded mapping

        Returns:
            Response body; failures are reported as {"Err": message}
        """
        handler = self._handlers.get(endpoint)
        if handler is None:
            logger.error(f"Unknown endpoint: {endpoint}")
            return {"Err": f"Unknown endpoint {endpoint}"}

        try:
            request = self._decode(body)
        except ValueError as e:
            logger.error(f"{endpoint}: {e}")
            return {"Err": str(e)}

        try:
            return handler(request)
        except Exception as e:
            logger.error(f"Error in {endpoint}: {e}", exc_info=True)
            return {"Err": str(e)}

    def handle_json(self, endpoint: str, body: Body = None) -> str:
        """handle() with the response encoded as JSON text."""
        return json.dumps(self.handle(endpoint, body))

    @staticmethod
    def _decode(body: Body) -> Dict[str, Any]:
        if body is None or body == b"" or body == "":
            return {}
        if isinstance(body, dict):
            return body
        try:
            request = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValueError(f"Malformed request body: {e}") from e
        if request is None:
            return {}
        if not isinstance(request, dict):
            raise ValueError("Malformed request body: expected a JSON object")
        return request

    @staticmethod
    def _name(request: Dict[str, Any]) -> Optional[str]:
        name = request.get("Name")
        return name if isinstance(name, str) and name else None

    def _with_name(
        self, request: Dict[str, Any], operation: Callable[[str], VolumeResponse]
    ) -> Dict[str, Any]:
        name = self._name(request)
        if name is None:
            return {"Err": "Volume name must be specified"}
        return operation(name).to_dict()

    def handle_activate(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return {"Implements": ["VolumeDriver"]}

    def handle_create(self, request: Dict[str, Any]) -> Dict[str, Any]:
        opts = request.get("Opts") or {}
        if not isinstance(opts, dict):
            return {"Err": "Volume options must be an object"}
        return self._with_name(request, lambda name: self.driver.create(name, opts))

    def handle_remove(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self._with_name(request, self.driver.remove)

    def handle_mount(self, request: Dict[str, Any]) -> Dict[str, Any]:
        request_id = request.get("ID") or ""
        return self._with_name(request, lambda name: self.driver.mount(name, request_id))

    def handle_unmount(self, request: Dict[str, Any]) -> Dict[str, Any]:
        request_id = request.get("ID") or ""
        return self._with_name(request, lambda name: self.driver.unmount(name, request_id))

    def handle_path(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self._with_name(request, self.driver.path)

    def handle_get(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self._with_name(request, self.driver.get)

    def handle_list(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.driver.list().to_dict()

    def handle_capabilities(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.driver.capabilities().to_dict()
