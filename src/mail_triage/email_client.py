"""Microsoft Graph mailbox.

Objective:
    Implement the :class:`src.mail_triage.mailbox.Mailbox` protocol on top of
    Microsoft Graph mail endpoints. This module centralizes HTTP request
    construction, authentication headers and the mapping between Graph JSON
    and :class:`src.mail_triage.models.MailMessage`.

Responsibilities:
    - Issue authenticated HTTP requests to Graph (via :mod:`requests`).
    - List unread messages of a folder, following ``@odata.nextLink``.
    - Write back subject, importance, categories and flag.
    - Read and extend the master category list.

High-level call tree:
    - Public API:
        - :meth:`GraphMailbox.folder_name`
        - :meth:`GraphMailbox.list_unread` -> :class:`MailMessage`
        - :meth:`GraphMailbox.save`
        - :meth:`GraphMailbox.list_categories` -> :class:`MailCategory`
        - :meth:`GraphMailbox.create_category`
    - Internal helpers:
        - :meth:`GraphMailbox._make_request` (auth + error handling)
        - :func:`message_from_graph` / :func:`message_patch`

Graph endpoints used:
    - ``GET /me/mailFolders/{folder}``
    - ``GET /me/mailFolders/{folder}/messages?$filter=isRead eq false``
    - ``PATCH /me/messages/{id}``
    - ``GET /me/outlook/masterCategories``
    - ``POST /me/outlook/masterCategories``

Flag colour and flag request text have no first-class Graph property, and
``subject`` can only be patched on drafts. All three are written as MAPI
single-value extended properties.

Error handling:
    HTTP errors are logged and raised from :meth:`_make_request`. The
    orchestrator decides whether a failure is fatal (listing) or per-message
    (saving).
"""

import logging
from typing import AbstractSet, Any, Optional
from urllib.parse import quote

import requests

from .auth import GraphAuthenticator
from .config import Settings
from .models import FlagIcon, MailCategory, MailMessage

logger = logging.getLogger(__name__)

FLAG_ICON_PROPERTY = "Integer 0x1095"
FLAG_REQUEST_PROPERTY = "String {00062008-0000-0000-C000-000000000046} Id 0x8530"
# PidTagSubject; the first-class ``subject`` is writable on drafts only.
SUBJECT_PROPERTY = "String 0x0037"

_MESSAGE_SELECT = "id,subject,sender,from,body,categories,importance,flag,isRead"
_EXTENDED_EXPAND = (
    "singleValueExtendedProperties($filter=id eq '{icon}' or id eq '{request}')"
).format(icon=FLAG_ICON_PROPERTY, request=FLAG_REQUEST_PROPERTY)


def _extended_properties(item: dict[str, Any]) -> dict[str, str]:
    props = {}
    for prop in item.get("singleValueExtendedProperties") or []:
        prop_id = str(prop.get("id", ""))
        props[prop_id.lower()] = str(prop.get("value") or "")
    return props


def message_from_graph(item: dict[str, Any]) -> MailMessage:
    """
    Convert a Graph message resource into a :class:`MailMessage`.

    Args:
        item: Message JSON returned by Graph.

    Returns:
        MailMessage: Parsed message.
    """
    sender_block = item.get("sender") or item.get("from") or {}
    address = sender_block.get("emailAddress") or {}
    body = item.get("body") or {}
    flag = item.get("flag") or {}
    props = _extended_properties(item)

    flag_icon = None
    raw_icon = props.get(FLAG_ICON_PROPERTY.lower(), "")
    if raw_icon.isdigit() and int(raw_icon) in {i.value for i in FlagIcon}:
        flag_icon = FlagIcon(int(raw_icon))

    return MailMessage(
        id=item["id"],
        subject=item.get("subject") or "",
        sender=address.get("address") or address.get("name") or "",
        body=body.get("content") or "",
        body_content_type=(body.get("contentType") or "text").lower(),
        categories=list(item.get("categories") or []),
        importance=(item.get("importance") or "normal").lower(),
        flag_status=flag.get("flagStatus") or "notFlagged",
        flag_icon=flag_icon,
        flag_request=props.get(FLAG_REQUEST_PROPERTY.lower(), ""),
    )


def message_patch(message: MailMessage) -> dict[str, Any]:
    """
    Build the PATCH body persisting a message's classification fields.

    Args:
        message: Updated message.

    Returns:
        dict[str, Any]: Graph update payload.
    """
    properties = [
        {"id": SUBJECT_PROPERTY, "value": message.subject},
        {
            "id": FLAG_ICON_PROPERTY,
            "value": str(int(message.flag_icon) if message.flag_icon is not None else 0),
        },
    ]
    if message.flag_request:
        properties.append({"id": FLAG_REQUEST_PROPERTY, "value": message.flag_request})

    return {
        "importance": message.importance,
        "categories": list(message.categories),
        "flag": {"flagStatus": message.flag_status},
        "singleValueExtendedProperties": properties,
    }


class GraphMailbox:
    """
    Mailbox backed by Microsoft Graph.

    This class is intentionally state-light: it primarily depends on
    :class:`src.mail_triage.auth.GraphAuthenticator` for tokens and builds
    URLs relative to :attr:`GRAPH_BASE_URL`.

    Attributes:
        settings: Application settings.
        auth: Graph API authenticator.
    """

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
    PAGE_SIZE = 50

    def __init__(self, settings: Settings, auth: GraphAuthenticator) -> None:
        """
        Initialize the mailbox.

        Args:
            settings: Application settings.
            auth: Graph API authenticator.
        """
        self.settings = settings
        self.auth = auth

    @property
    def user_path(self) -> str:
        """``/me``, or ``/users/{upn}`` for application permissions."""
        upn = (self.settings.target_user_principal_name or "").strip()
        if self.settings.use_client_credentials and upn:
            return f"/users/{quote(upn, safe='')}"
        return "/me"

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
        headers: Optional[dict] = None,
        suppress_statuses: Optional[AbstractSet[int]] = None,
    ) -> dict:
        """Make an authenticated request to Microsoft Graph.

        This helper:
        - Adds auth headers (Bearer token).
        - Applies a default timeout.
        - Raises for non-2xx responses.
        - Returns decoded JSON or ``{}`` for 204 responses.

        Args:
            method: HTTP method (GET, POST, PATCH).
            endpoint: API endpoint path, or an absolute ``@odata.nextLink``.
            params: Query parameters.
            json_data: JSON body data.
            headers: Extra request headers.
            suppress_statuses: Statuses logged at DEBUG instead of ERROR.

        Returns:
            dict: Response JSON data.

        Raises:
            requests.HTTPError: If request fails.
        """
        if endpoint.startswith("http"):
            url = endpoint
        else:
            url = f"{self.GRAPH_BASE_URL}{endpoint}"

        request_headers = self.auth.get_auth_headers()
        if headers:
            request_headers.update(headers)

        response = requests.request(
            method=method,
            url=url,
            headers=request_headers,
            params=params,
            json=json_data,
            timeout=30,
        )

        if not response.ok:
            suppress = suppress_statuses and response.status_code in suppress_statuses
            if suppress:
                logger.debug(
                    "Graph API expected non-2xx: %s - %s",
                    response.status_code,
                    response.text,
                )
            else:
                logger.error(
                    f"Graph API error: {response.status_code} - {response.text}"
                )
            response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    def folder_name(self, folder: str) -> str:
        """Display name of a folder, or the folder key when it cannot be read."""
        safe_folder = quote(folder, safe="")
        try:
            data = self._make_request(
                "GET",
                f"{self.user_path}/mailFolders/{safe_folder}",
                params={"$select": "displayName"},
                suppress_statuses={404},
            )
        except requests.RequestException as e:
            logger.warning(f"Could not resolve folder name for '{folder}': {e}")
            return folder
        return data.get("displayName") or folder

    def list_unread(self, folder: str, limit: Optional[int] = None) -> list[MailMessage]:
        """Fetch unread messages of a folder, newest first.

        Bodies are requested as plain text; HTML bodies returned anyway are
        converted by the extractor.

        Args:
            folder: Well-known folder name (``inbox``) or folder ID.
            limit: Maximum number of messages (None for all).

        Returns:
            list[MailMessage]: Unread messages.
        """
        safe_folder = quote(folder, safe="")
        endpoint: Optional[str] = f"{self.user_path}/mailFolders/{safe_folder}/messages"
        page_size = min(limit, self.PAGE_SIZE) if limit else self.PAGE_SIZE
        params: Optional[dict] = {
            "$filter": "isRead eq false",
            "$top": page_size,
            "$select": _MESSAGE_SELECT,
            "$expand": _EXTENDED_EXPAND,
            "$orderby": "receivedDateTime desc",
        }
        headers = {"Prefer": 'outlook.body-content-type="text"'}

        messages: list[MailMessage] = []
        while endpoint:
            response = self._make_request("GET", endpoint, params=params, headers=headers)
            for item in response.get("value", []):
                try:
                    messages.append(message_from_graph(item))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Failed to parse message: {e}")
                    continue
                if limit and len(messages) >= limit:
                    logger.debug(f"Fetched {len(messages)} unread messages")
                    return messages

            endpoint = response.get("@odata.nextLink")
            # nextLink already carries the query string.
            params = None

        logger.debug(f"Fetched {len(messages)} unread messages")
        return messages

    def save(self, message: MailMessage) -> None:
        """Persist subject, importance, categories and flag of a message.

        Raises:
            requests.HTTPError: If Graph rejects the update.
        """
        safe_id = quote(message.id, safe="")
        self._make_request(
            "PATCH",
            f"{self.user_path}/messages/{safe_id}",
            json_data=message_patch(message),
        )
        logger.debug(f"Updated message {message.id}")

    def list_categories(self) -> list[MailCategory]:
        response = self._make_request("GET", f"{self.user_path}/outlook/masterCategories")
        return [MailCategory.model_validate(item) for item in response.get("value", [])]

    def create_category(self, name: str, color: str = "none") -> MailCategory:
        """Add a category to the master list.

        Args:
            name: Display name.
            color: Colour preset (``presetN``) or ``none``.

        Returns:
            MailCategory: Created category.
        """
        response = self._make_request(
            "POST",
            f"{self.user_path}/outlook/masterCategories",
            json_data={"displayName": name, "color": color},
        )
        if response:
            return MailCategory.model_validate(response)
        return MailCategory(display_name=name, color=color)
