from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inbox_digest.errors import MailStoreError
from inbox_digest.gmail.LabelColors import color_for
from inbox_digest.models import MailMessage
from inbox_digest.parsing.parser import message_from_resource

logger = logging.getLogger(__name__)

# modify covers labels, archive, star and read state; send is needed for the digest.
SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.send",
]


@dataclass(frozen=True)
class GmailClientConfig:
    # Path to OAuth client credentials downloaded from Google Cloud Console.
    credentials_path: Path
    # Token cache will be created here after first login.
    token_path: Path
    # Gmail userId, "me" refers to the authenticated user.
    user_id: str = "me"
    # Body excerpt length kept on each fetched message.
    body_chars: int = 2000


class GmailClient:
    def __init__(self, cfg: GmailClientConfig, service: Optional[Any] = None):
        self._cfg = cfg
        self._creds: Optional[Credentials] = None
        self._service = service
        # Label cache lives for the client's lifetime, i.e. one run.
        self._labels_by_name: Dict[str, str] = {}
        self._labels_by_id: Dict[str, str] = {}
        self._labels_loaded = False

    def connect(self) -> None:
        """Create an authenticated Gmail API service client."""
        if self._service is not None:
            return

        creds = None

        if self._cfg.token_path.exists():
            creds = Credentials.from_authorized_user_file(str(self._cfg.token_path), SCOPES)

        # If there are no (valid) credentials available, let the user log in.
        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(self._cfg.credentials_path),
                    SCOPES,
                )
                creds = flow.run_local_server(port=0)

            # Save the credentials for the next run.
            self._cfg.token_path.parent.mkdir(parents=True, exist_ok=True)
            self._cfg.token_path.write_text(creds.to_json(), encoding="utf-8")

        self._creds = creds
        self._service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        logger.info("Gmail client connected user_id=%s", self._cfg.user_id)

    @property
    def service(self):
        if self._service is None:
            raise RuntimeError("GmailClient is not connected. Call connect() first.")
        return self._service

    @property
    def user_id(self) -> str:
        return self._cfg.user_id

    def get_profile(self) -> Dict[str, Any]:
        """Get the Gmail profile of the authenticated user."""
        return self.service.users().getProfile(userId=self.user_id).execute()

    # --- Reading ---

    def list_thread_ids(self, query: str = "", max_results: int = 10) -> List[str]:
        """
        List the most recent thread IDs matching a Gmail search query.
        Example query: 'in:inbox newer_than:7d'
        """
        resp = (
            self.service.users()
            .threads()
            .list(userId=self.user_id, q=query, maxResults=max_results)
            .execute()
        )
        return [t["id"] for t in resp.get("threads", [])]

    def get_thread(self, thread_id: str, fmt: str = "full") -> Dict[str, Any]:
        """
        Fetch a thread resource.
        fmt: 'full' | 'metadata' | 'minimal'
        """
        return (
            self.service.users()
            .threads()
            .get(userId=self.user_id, id=thread_id, format=fmt)
            .execute()
        )

    def list_messages(self, query: str = "", max_results: int = 10) -> List[MailMessage]:
        """Return the latest message of each of the most recent matching threads."""
        messages: List[MailMessage] = []
        for thread_id in self.list_thread_ids(query=query, max_results=max_results):
            try:
                thread = self.get_thread(thread_id, fmt="full")
            except HttpError as exc:
                # Thread deleted between list and fetch.
                if getattr(exc.resp, "status", None) == 404:
                    logger.info("[skip] thread_id=%s no longer exists", thread_id)
                    continue
                raise
            thread_messages = thread.get("messages") or []
            if not thread_messages:
                continue
            messages.append(message_from_resource(thread_messages[-1], body_chars=self._cfg.body_chars))
        return messages

    def thread_label_names(self, thread_id: str) -> List[str]:
        """Names of every label attached to any message of the thread."""
        thread = self.get_thread(thread_id, fmt="minimal")
        label_ids: set[str] = set()
        for msg in thread.get("messages") or []:
            label_ids.update(msg.get("labelIds") or [])

        self._load_labels()
        return sorted(self._labels_by_id.get(lid, lid) for lid in label_ids)

    # --- Labels ---

    def _load_labels(self, *, refresh: bool = False) -> None:
        if self._labels_loaded and not refresh:
            return
        resp = self.service.users().labels().list(userId=self.user_id).execute()
        labels = resp.get("labels", [])
        self._labels_by_name = {item["name"]: item["id"] for item in labels}
        self._labels_by_id = {item["id"]: item["name"] for item in labels}
        self._labels_loaded = True
        logger.debug("Cached %d labels", len(labels))

    def get_or_create_label_id(self, label_name: str) -> Optional[str]:
        name = label_name.strip()
        if not name:
            raise ValueError("Label name must be a non-empty string.")

        self._load_labels()
        label_id = self._labels_by_name.get(name)
        if label_id:
            return label_id

        body = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
            "color": color_for(name),
        }
        try:
            created = self.service.users().labels().create(userId=self.user_id, body=body).execute()
        except HttpError as exc:
            # 409: created concurrently (or exists with different case); reload and retry lookup.
            if getattr(exc.resp, "status", None) != 409:
                raise
            self._load_labels(refresh=True)
            label_id = self._labels_by_name.get(name)
            if label_id:
                return label_id
            # Gmail label names are case-insensitive.
            folded = name.casefold()
            return next(
                (lid for existing, lid in self._labels_by_name.items() if existing.casefold() == folded),
                None,
            )

        label_id = created.get("id")
        if label_id:
            self._labels_by_name[name] = label_id
            self._labels_by_id[label_id] = name
            logger.info("[LABEL] created label=%s id=%s", name, label_id)
        return label_id

    def _modify_thread(self, thread_id: str, *, add: Sequence[str] = (), remove: Sequence[str] = ()) -> None:
        add_ids = [x for x in add if x]
        remove_ids = [x for x in remove if x]
        if not add_ids and not remove_ids:
            return
        self.service.users().threads().modify(
            userId=self.user_id,
            id=thread_id,
            body={"addLabelIds": add_ids, "removeLabelIds": remove_ids},
        ).execute()

    def _modify_message(self, message_id: str, *, add: Sequence[str] = (), remove: Sequence[str] = ()) -> None:
        add_ids = [x for x in add if x]
        remove_ids = [x for x in remove if x]
        if not add_ids and not remove_ids:
            return
        self.service.users().messages().modify(
            userId=self.user_id,
            id=message_id,
            body={"addLabelIds": add_ids, "removeLabelIds": remove_ids},
        ).execute()

    def add_thread_label(self, thread_id: str, label_id: str) -> None:
        self._modify_thread(thread_id, add=[label_id])

    def remove_thread_labels(self, thread_id: str, label_names: List[str]) -> None:
        self._load_labels()
        missing = [name for name in label_names if name not in self._labels_by_name]
        if missing:
            raise MailStoreError(f"Unknown labels on thread {thread_id}: {missing}")
        self._modify_thread(thread_id, remove=[self._labels_by_name[name] for name in label_names])

    # --- Mutations ---

    def archive_thread(self, thread_id: str) -> None:
        self._modify_thread(thread_id, remove=["INBOX"])

    def star_message(self, message_id: str) -> None:
        self._modify_message(message_id, add=["STARRED"])

    def mark_thread_important(self, thread_id: str) -> None:
        self._modify_thread(thread_id, add=["IMPORTANT"])

    def mark_message_unread(self, message_id: str) -> None:
        self._modify_message(message_id, add=["UNREAD"])

    def mark_message_read(self, message_id: str) -> None:
        self._modify_message(message_id, remove=["UNREAD"])

    def send_message(self, to: str, subject: str, html_body: str) -> None:
        mime = MIMEText(html_body, "html", "utf-8")
        mime["To"] = to
        mime["Subject"] = subject
        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode("ascii")
        self.service.users().messages().send(userId=self.user_id, body={"raw": raw}).execute()
        logger.info("[SEND] to=%s subject=%s", to, subject)
