"""Post-login provisioning: initial balance and avatar import.

Each task runs in isolation. A failing task is logged and recorded on the
report as :class:`ProvisioningDegraded`; it never fails the login.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from io import BytesIO

import httpx
from loguru import logger
from PIL import Image
from starlette.concurrency import run_in_threadpool

from src.idbridge.core.errors import ProvisioningDegraded
from src.idbridge.core.models.identity import CanonicalIdentity
from src.idbridge.core.providers.descriptor import ProviderDescriptor
from src.idbridge.core.services.http_client import build_http_client
from src.idbridge.core.storage.account_store import BalanceStore, UserStore
from src.idbridge.core.storage.object_storage import ObjectStorage
from src.idbridge.entities.user import User
from src.idbridge.runtime.config.config_data import AvatarConfig, BalanceConfig

PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA"}


@dataclass
class ProvisioningContext:
    user: User
    identity: CanonicalIdentity
    descriptor: ProviderDescriptor
    access_token: str | None
    created: bool


@dataclass
class ProvisioningReport:
    user: User
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    degraded: list[ProvisioningDegraded] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.degraded


class ProvisioningTask(ABC):
    name: str

    @abstractmethod
    def applies(self, ctx: ProvisioningContext) -> bool:
        """Whether the task should run for this login."""

    @abstractmethod
    async def run(self, ctx: ProvisioningContext) -> User | None:
        """Run the task, returning the user when it was modified."""


class BalanceGrantTask(ProvisioningTask):
    """Grant the configured starting balance to newly created users."""

    name = "balance_grant"

    def __init__(self, balance_store: BalanceStore, config: BalanceConfig):
        self._balances = balance_store
        self._config = config

    def applies(self, ctx: ProvisioningContext) -> bool:
        return self._config.enabled and ctx.created

    async def run(self, ctx: ProvisioningContext) -> User | None:
        inserted = await self._balances.upsert_insert_only(
            ctx.user.id, self._config.initial_amount
        )
        if inserted:
            logger.info(
                "Granted initial balance of {} to user {}",
                self._config.initial_amount,
                ctx.user.id,
            )
        else:
            logger.debug("User {} already has a balance", ctx.user.id)
        return None


def avatar_file_name(subject_id: str) -> str:
    return f"{re.sub(r'[^A-Za-z0-9._-]', '_', subject_id)}.png"


def reencode_png(data: bytes) -> bytes:
    """Decode any image Pillow understands and re-encode it as PNG."""
    with Image.open(BytesIO(data)) as image:
        image.load()
        if image.mode not in PNG_MODES:
            image = image.convert("RGBA")
        out = BytesIO()
        image.save(out, format="PNG")
    return out.getvalue()


class AvatarImportTask(ProvisioningTask):
    """Copy the provider's profile picture into object storage.

    Runs on every login unless the user set their avatar manually.
    """

    name = "avatar_import"

    def __init__(
        self,
        user_store: UserStore,
        object_storage: ObjectStorage,
        config: AvatarConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._users = user_store
        self._storage = object_storage
        self._config = config
        self._transport = transport

    def applies(self, ctx: ProvisioningContext) -> bool:
        return (
            self._config.enabled
            and bool(ctx.identity.picture_url)
            and not ctx.user.has_manual_avatar(self._config.manual_marker)
        )

    async def download(self, ctx: ProvisioningContext) -> bytes:
        headers = {}
        if ctx.access_token:
            headers["Authorization"] = f"Bearer {ctx.access_token}"

        chunks = bytearray()
        async with build_http_client(
            ctx.descriptor.timeout_seconds, self._transport
        ) as client:
            async with client.stream(
                "GET", ctx.identity.picture_url, headers=headers, follow_redirects=True
            ) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    chunks.extend(chunk)
                    if len(chunks) > self._config.max_bytes:
                        raise ValueError(
                            f"Avatar exceeds {self._config.max_bytes} bytes"
                        )
        return bytes(chunks)

    async def run(self, ctx: ProvisioningContext) -> User | None:
        raw = await self.download(ctx)
        png = await run_in_threadpool(reencode_png, raw)
        path = await self._storage.save(
            avatar_file_name(ctx.identity.subject_id), ctx.user.id, png
        )
        logger.info("Imported avatar for user {}", ctx.user.id)
        return await self._users.set_avatar(ctx.user.id, path)


class ProvisioningService:
    def __init__(self, tasks: list[ProvisioningTask]):
        self._tasks = tasks

    async def run(self, ctx: ProvisioningContext) -> ProvisioningReport:
        """Run every applicable task in order, isolating failures."""
        report = ProvisioningReport(user=ctx.user)

        for task in self._tasks:
            if not task.applies(ctx):
                report.skipped.append(task.name)
                continue
            try:
                updated = await task.run(ctx)
            except Exception as exc:
                degraded = ProvisioningDegraded(task.name, ctx.user.id, exc)
                logger.opt(exception=exc).error(str(degraded))
                report.degraded.append(degraded)
                continue

            if updated is not None:
                ctx.user = updated
                report.user = updated
            report.completed.append(task.name)

        return report
