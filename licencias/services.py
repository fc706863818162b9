"""Wiring of the portal collaborators built once per application."""

from __future__ import annotations

from dataclasses import dataclass

from licencias.config import PortalSettings
from licencias.report import ReportFeed
from licencias.session import PortalSession, SessionController
from licencias.storage import ObjectStorage
from licencias.store import DocumentStore
from licencias.workflow import LeaveWorkflow


@dataclass
class PortalServices:
    controller: SessionController
    storage: ObjectStorage
    workflow: LeaveWorkflow | None = None

    @property
    def settings(self) -> PortalSettings:
        if self.controller.settings is None:
            raise RuntimeError("Portal settings are not loaded.")
        return self.controller.settings

    @property
    def store(self) -> DocumentStore:
        if self.controller.store is None:
            raise RuntimeError("Document store is not initialized.")
        return self.controller.store

    def session(self) -> PortalSession:
        return self.controller.current_session()

    def report_feed(self) -> ReportFeed:
        return ReportFeed(self.store, self.settings.requests_collection)
