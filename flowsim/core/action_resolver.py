"""Automation catalog lookups for automated workflow nodes."""

from typing import Dict, List, Optional

import requests
from pydantic import ValidationError

from ..models.core import AutomationAction
from .exceptions import ActionResolutionError
from .logging import get_logger

logger = get_logger(__name__)


DEFAULT_AUTOMATIONS = [
    {"id": "send_email", "label": "Send Email", "params": ["to", "subject"]},
    {"id": "generate_doc", "label": "Generate Document", "params": ["template", "recipient"]},
]


class ActionResolver:
    """Resolves an automation identifier to its catalog entry."""

    def list_actions(self) -> List[AutomationAction]:
        """Return every action in the catalog."""
        raise NotImplementedError

    def resolve(self, action_id: str) -> Optional[AutomationAction]:
        """
        Look up an action by identifier.

        Args:
            action_id: Identifier configured on the automated node

        Returns:
            The matching action, or None if the catalog does not know it

        Raises:
            ActionResolutionError: If the catalog cannot be read
        """
        for action in self.list_actions():
            if action.id == action_id:
                return action
        return None


class StaticActionResolver(ActionResolver):
    """In-memory automation catalog."""

    def __init__(self, actions: Optional[List[Dict]] = None):
        """Initialize the catalog.

        Args:
            actions: Raw catalog entries; the built-in demo automations are used when omitted
        """
        self._actions: Dict[str, AutomationAction] = {}
        for raw_action in DEFAULT_AUTOMATIONS if actions is None else actions:
            self.register_action(AutomationAction.model_validate(raw_action))

    def register_action(self, action: AutomationAction) -> None:
        """Add an action to the catalog.

        Raises:
            ActionResolutionError: If an action with the same ID is already registered
        """
        if action.id in self._actions:
            raise ActionResolutionError(f"Action '{action.id}' is already registered", action_id=action.id)
        self._actions[action.id] = action
        logger.debug(f"Registered automation '{action.id}'")

    def action_exists(self, action_id: str) -> bool:
        return action_id in self._actions

    def list_actions(self) -> List[AutomationAction]:
        return list(self._actions.values())

    def resolve(self, action_id: str) -> Optional[AutomationAction]:
        return self._actions.get(action_id)


class HttpActionResolver(ActionResolver):
    """Automation catalog served over HTTP as a JSON list of actions."""

    def __init__(self, catalog_url: str, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        """Initialize the resolver.

        Args:
            catalog_url: URL returning the catalog list
            session: Optional requests session; a new one is created if not provided
            timeout: Optional request timeout in seconds
        """
        self.catalog_url = catalog_url
        self._session = session or requests.Session()
        self._timeout = timeout

    def list_actions(self) -> List[AutomationAction]:
        try:
            response = self._session.get(self.catalog_url, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ActionResolutionError(
                f"Failed to fetch automations: {e}", catalog_url=self.catalog_url
            ) from e

        if not isinstance(payload, list):
            raise ActionResolutionError(
                "Automation catalog must be a JSON list", catalog_url=self.catalog_url
            )

        try:
            return [AutomationAction.model_validate(item) for item in payload]
        except ValidationError as e:
            raise ActionResolutionError(
                f"Invalid automation catalog entry: {e}", catalog_url=self.catalog_url
            ) from e
