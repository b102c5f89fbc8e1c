"""ListController: the reusable core behind every back-office list page.

One controller per page instance owns:

- remote loading with fallback data and a request-generation guard,
- the derived filter -> sort -> paginate pipeline,
- create / update / delete with optimistic local application and rollback.

Public operations never raise for network or server problems; they return
``Ok`` / ``Err`` results (see ``backoffice.lists.results``).
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from backoffice.core.telemetry import list_span
from backoffice.lists import pipeline
from backoffice.lists.pipeline import (
    Entity,
    PageWindow,
    PaginationSummary,
    Predicate,
    QueryState,
    SortDirection,
    SortKey,
    SortSpec,
)
from backoffice.lists.results import (
    Err,
    ErrorKind,
    Ok,
    Result,
    err_from_exception,
    err_from_validation,
)
from backoffice.lists.store import EntityStore
from backoffice.lists.transport import ResourceClient, ResourceEndpoint, TransportError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
DEFAULT_DEBOUNCE_S = 0.3

DeleteGuard = Callable[[Entity], str | None]
Listener = Callable[[], None]


class MutationMode(enum.StrEnum):
    """How a mutation is reflected locally.

    ``safe`` waits for the server before touching the collection;
    ``optimistic`` applies the change first and rolls it back on failure.
    """

    SAFE = "safe"
    OPTIMISTIC = "optimistic"


class MutationState(enum.StrEnum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"


class LoadStatus(enum.StrEnum):
    LOADED = "loaded"
    LOADED_WITH_FALLBACK = "loaded_with_fallback"
    SUPERSEDED = "superseded"


@dataclass
class ListSpec:
    """Per-page configuration of a :class:`ListController`.

    ``facet_fields`` maps client-side facet names to entity paths.
    ``server_facets`` maps facet names to query parameters sent to the
    endpoint instead; changing one triggers a refetch.  ``search_param``
    does the same for the search term (debounced).
    """

    name: str
    endpoint: ResourceEndpoint
    label: str = "item"
    search_fields: tuple[str, ...] = ()
    facet_fields: dict[str, str] = field(default_factory=dict)
    server_facets: dict[str, str] = field(default_factory=dict)
    search_param: str | None = None
    comparators: dict[str, SortKey] = field(default_factory=dict)
    default_sort: SortSpec = field(default_factory=SortSpec)
    input_model: type[BaseModel] | None = None
    delete_guard: DeleteGuard | None = None
    fallback: list[Entity] = field(default_factory=list)
    create_mode: MutationMode = MutationMode.SAFE
    update_mode: MutationMode = MutationMode.SAFE
    delete_mode: MutationMode = MutationMode.SAFE
    refresh_after_write: bool = True

    @property
    def id_field(self) -> str:
        return self.endpoint.id_field


class DeleteIntent:
    """First step of a two-step delete.

    Nothing changes until :meth:`confirm` is awaited; :meth:`cancel` drops
    the request.  An intent settles exactly once.
    """

    def __init__(self, controller: ListController, entity: Entity) -> None:
        self._controller = controller
        self.entity = entity
        self.settled = False

    @property
    def entity_id(self) -> Any:
        return self.entity.get(self._controller.spec.id_field)

    async def confirm(self) -> Result[None]:
        if self.settled:
            return Err(ErrorKind.BLOCKED, "Delete request was already settled")
        self.settled = True
        return await self._controller.remove(self.entity_id)

    def cancel(self) -> None:
        self.settled = True


class ListController:
    """Fetch, derive and mutate one list page's entity collection."""

    def __init__(
        self,
        spec: ListSpec,
        client: ResourceClient,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        fallback: list[Entity] | None = None,
        owns_client: bool = False,
    ) -> None:
        self.spec = spec
        self._client = client
        self._owns_client = owns_client
        self._fallback = [dict(e) for e in (fallback if fallback is not None else spec.fallback)]
        self._store = EntityStore(spec.id_field, [dict(e) for e in self._fallback])
        self._query = QueryState()
        self._sort = spec.default_sort
        self._window = PageWindow(page_size=page_size)
        self._debounce_s = debounce_s
        self._predicate = self._build_predicate()

        self._issued_generation = 0
        self._loads_in_flight = 0
        self._has_loaded = False
        self._debounce_task: asyncio.Task | None = None
        self._fetch_tasks: set[asyncio.Task] = set()
        self._mutations: dict[Any, MutationState] = {}
        self._temp_ids = 0
        self._collection_version = 0

        self.warning: str | None = None
        self._listeners: list[Listener] = []
        self._visible: list[Entity] = []
        self._filtered: list[Entity] = []
        self._summary: PaginationSummary = pipeline.summarize(0, self._window)
        self._unsubscribe_store = self._store.subscribe(self._recompute)
        self._recompute()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ListController:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel pending fetches, dispose the store and release the client."""
        tasks = list(self._fetch_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._fetch_tasks.clear()
        self._debounce_task = None
        self._unsubscribe_store()
        self._store.dispose()
        self._listeners.clear()
        if self._owns_client:
            await self._client.aclose()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Notify *listener* after every recomputation of the visible page."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def loading(self) -> bool:
        return self._loads_in_flight > 0

    async def load(self) -> Result[LoadStatus]:
        """Fetch the collection; fall back to local data when the fetch fails.

        Only the most recently issued fetch may update the collection; an
        older response is reported as ``SUPERSEDED`` and dropped.
        """
        self._issued_generation += 1
        generation = self._issued_generation
        self._loads_in_flight += 1
        try:
            with list_span("load", page=self.spec.name) as span:
                span.set_attribute("backoffice.generation", generation)
                try:
                    items = await self._client.fetch(self._server_params())
                except TransportError as exc:
                    if generation != self._issued_generation:
                        logger.debug("Discarding failed superseded fetch #%d", generation)
                        return Ok(LoadStatus.SUPERSEDED)
                    span.fail(exc.kind.value, str(exc))
                    return self._apply_fallback(exc)

                if generation != self._issued_generation:
                    logger.debug(
                        "Discarding superseded fetch #%d (latest is #%d)",
                        generation,
                        self._issued_generation,
                    )
                    return Ok(LoadStatus.SUPERSEDED)

                self._store.replace(items)
                self._collection_version += 1
                self._has_loaded = True
                self.warning = None
                logger.info("Loaded %d %s item(s)", len(self._store), self.spec.name)
                return Ok(LoadStatus.LOADED)
        finally:
            self._loads_in_flight -= 1

    async def refresh(self) -> Result[LoadStatus]:
        """User-triggered reload ("Try Again")."""
        return await self.load()

    def _apply_fallback(self, exc: TransportError) -> Ok[LoadStatus]:
        message = f"Failed to load {self.spec.label} list"
        if exc.kind is ErrorKind.SERVER and exc.message:
            message = f"{message}: {exc.message}"
        if not self._has_loaded:
            self._store.replace([dict(e) for e in self._fallback])
            self._collection_version += 1
        self.warning = message
        logger.warning("%s (%s); showing %d local item(s)", message, exc, len(self._store))
        return Ok(LoadStatus.LOADED_WITH_FALLBACK, warning=message)

    def _server_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for facet, param in self.spec.server_facets.items():
            value = self._query.facets.get(facet)
            if not pipeline.is_unconstrained(value):
                params[param] = value
        if self.spec.search_param and self._query.search.strip():
            params[self.spec.search_param] = self._query.search.strip()
        return params

    def _schedule_fetch(self, delay: float) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        task = asyncio.get_running_loop().create_task(self._delayed_load(delay))
        self._debounce_task = task
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)

    async def _delayed_load(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        # Past the debounce window: a newer call no longer cancels this fetch,
        # it only makes its response stale.
        if self._debounce_task is asyncio.current_task():
            self._debounce_task = None
        await self.load()

    async def wait_idle(self) -> None:
        """Wait for scheduled and in-flight background fetches to finish."""
        while self._fetch_tasks:
            await asyncio.gather(*list(self._fetch_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Query state
    # ------------------------------------------------------------------

    @property
    def query(self) -> QueryState:
        return self._query

    @property
    def sort(self) -> SortSpec:
        return self._sort

    def set_search(self, term: str) -> None:
        """Change the search term; always returns to page 1."""
        term = term or ""
        self._query = self._query.model_copy(update={"search": term})
        self._window = PageWindow(page=1, page_size=self._window.page_size)
        if self.spec.search_param:
            self._schedule_fetch(self._debounce_s)
        self._recompute()

    def set_facet(self, name: str, value: str | None) -> None:
        """Change one facet selection (``"all"`` clears it); returns to page 1."""
        facets = dict(self._query.facets)
        if pipeline.is_unconstrained(value):
            facets.pop(name, None)
        else:
            facets[name] = str(value)
        self._query = self._query.model_copy(update={"facets": facets})
        self._window = PageWindow(page=1, page_size=self._window.page_size)
        if name in self.spec.server_facets:
            self._schedule_fetch(0)
        self._recompute()

    def set_sort(self, key: str | None, direction: SortDirection = "asc") -> None:
        if direction not in ("asc", "desc"):
            raise ValueError(f"Invalid sort direction: {direction!r}")
        self._sort = SortSpec(key=key, direction=direction)
        self._recompute()

    def toggle_sort(self, key: str) -> SortSpec:
        self._sort = self._sort.toggled(key)
        self._recompute()
        return self._sort

    def set_page(self, page: int) -> int:
        """Move to *page*, clamped to the available range; returns the page shown."""
        self._window = PageWindow(page=max(1, int(page)), page_size=self._window.page_size)
        self._recompute()
        return self._window.page

    def set_page_size(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._window = PageWindow(page=self._window.page, page_size=page_size)
        self._recompute()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def visible_items(self) -> list[Entity]:
        """Entities on the current page."""
        return list(self._visible)

    def filtered_items(self) -> list[Entity]:
        """Every entity matching the query, in display order."""
        return list(self._filtered)

    def all_items(self) -> list[Entity]:
        return self._store.snapshot()

    def get(self, entity_id: Any) -> Entity | None:
        return self._store.get(entity_id)

    def pagination_summary(self) -> PaginationSummary:
        return self._summary

    def facet_options(self, field_path: str) -> list[str]:
        return pipeline.facet_options(self._store.snapshot(), field_path)

    def count_by(self, field_path: str) -> dict[str, int]:
        return pipeline.count_by(self._store.snapshot(), field_path)

    def _build_predicate(self) -> Predicate:
        predicates: list[Predicate] = []
        if self.spec.search_fields and not self.spec.search_param:
            predicates.append(pipeline.text_search(*self.spec.search_fields))
        predicates.append(pipeline.facet_match(self.spec.facet_fields))
        return pipeline.combine(*predicates)

    def _client_query(self) -> QueryState:
        # Server-side facets are already applied by the endpoint.
        facets = {
            name: value
            for name, value in self._query.facets.items()
            if name not in self.spec.server_facets
        }
        return QueryState(search=self._query.search, facets=facets)

    def _recompute(self) -> None:
        if self._store.disposed:
            return
        query = self._client_query()
        filtered = pipeline.apply_filter(self._store.snapshot(), query, self._predicate)
        ordered = pipeline.apply_sort(filtered, self._sort, self.spec.comparators)
        page = pipeline.clamp_page(self._window.page, len(ordered), self._window.page_size)
        if page != self._window.page:
            self._window = PageWindow(page=page, page_size=self._window.page_size)
        self._filtered = ordered
        self._visible = pipeline.paginate(ordered, self._window)
        self._summary = pipeline.summarize(len(ordered), self._window)
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("List listener failed")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mutation_state(self, entity_id: Any) -> MutationState:
        return self._mutations.get(entity_id, MutationState.IDLE)

    @property
    def submitting(self) -> bool:
        return any(s is MutationState.SUBMITTING for s in self._mutations.values())

    async def create(self, data: Mapping[str, Any]) -> Result[Entity]:
        fallback_message = f"Failed to create {self.spec.label}"
        with list_span("create", page=self.spec.name) as span:
            body = self._validate(data)
            if isinstance(body, Err):
                span.fail(body.kind.value, body.message)
                return body
            body.pop(self.spec.id_field, None)

            if self.spec.create_mode is MutationMode.OPTIMISTIC:
                result = await self._create_optimistic(body, fallback_message)
            else:
                result = await self._create_safe(body, fallback_message)
            if isinstance(result, Err):
                span.fail(result.kind.value, result.message)
            return result

    async def _create_safe(self, body: dict[str, Any], fallback_message: str) -> Result[Entity]:
        key = object()
        self._mutations[key] = MutationState.SUBMITTING
        try:
            try:
                created = await self._client.create(body)
            except TransportError as exc:
                logger.warning("Create %s failed: %s", self.spec.label, exc)
                return err_from_exception(exc, fallback_message)

            entity_id = created.get(self.spec.id_field)
            if entity_id is not None:
                if entity_id in self._store:
                    self._store.put(entity_id, created)
                else:
                    self._store.insert(created)
            logger.info("Created %s %r", self.spec.label, entity_id)
        finally:
            self._mutations.pop(key, None)

        if self.spec.refresh_after_write or entity_id is None:
            await self.load()
        return Ok(created)

    async def _create_optimistic(
        self, body: dict[str, Any], fallback_message: str
    ) -> Result[Entity]:
        provisional_id = self._provisional_id()
        self._store.insert({**body, self.spec.id_field: provisional_id})
        self._mutations[provisional_id] = MutationState.SUBMITTING
        try:
            try:
                created = await self._client.create(body)
            except TransportError as exc:
                self._store.remove(provisional_id)
                logger.warning(
                    "Create %s failed, removed provisional id %r: %s",
                    self.spec.label,
                    provisional_id,
                    exc,
                )
                return err_from_exception(exc, fallback_message)

            entity_id = created.get(self.spec.id_field)
            if entity_id is None:
                self._store.remove(provisional_id)
                logger.warning("Create %s response had no id; reloading", self.spec.label)
            elif provisional_id in self._store:
                self._store.put(provisional_id, created)
            elif entity_id in self._store:
                self._store.put(entity_id, created)
            else:
                self._store.insert(created)
        finally:
            self._mutations.pop(provisional_id, None)

        if entity_id is None:
            await self.load()
            return Err(ErrorKind.MALFORMED_RESPONSE, fallback_message)
        logger.info("Created %s %r (provisional %r)", self.spec.label, entity_id, provisional_id)
        return Ok(created)

    def _provisional_id(self) -> Any:
        """Id for an optimistic row, outside the range the server assigns.

        Integer collections get negative ids; anything else gets a ``tmp-``
        string. Ids are never reused within one controller.
        """
        ids = [e.get(self.spec.id_field) for e in self._store.snapshot()]
        numeric = all(isinstance(i, int) and not isinstance(i, bool) for i in ids)
        while True:
            self._temp_ids += 1
            if numeric:
                candidate: Any = -self._temp_ids
            else:
                candidate = f"tmp-{self._temp_ids}-{uuid.uuid4().hex[:8]}"
            if candidate not in self._store and candidate not in self._mutations:
                return candidate

    async def update(self, entity_id: Any, patch: Mapping[str, Any]) -> Result[Entity]:
        fallback_message = f"Failed to update {self.spec.label}"
        with list_span("update", page=self.spec.name) as span:
            result = await self._update(entity_id, patch, fallback_message)
            if isinstance(result, Err):
                span.fail(result.kind.value, result.message)
            return result

    async def _update(
        self, entity_id: Any, patch: Mapping[str, Any], fallback_message: str
    ) -> Result[Entity]:
        blocked = self._begin(entity_id)
        if blocked is not None:
            return blocked
        try:
            current = self._store.get(entity_id)
            if current is None:
                return Err(ErrorKind.NOT_FOUND, f"{self.spec.label.capitalize()} not found")

            patch = {k: v for k, v in patch.items() if k != self.spec.id_field}
            validated = self._validate({**current, **patch})
            if isinstance(validated, Err):
                return validated
            body = {k: validated.get(k, v) for k, v in patch.items()}

            self._mutations[entity_id] = MutationState.SUBMITTING
            optimistic = self.spec.update_mode is MutationMode.OPTIMISTIC
            version = self._collection_version
            if optimistic:
                self._store.put(entity_id, {**current, **body})

            try:
                updated = await self._client.update(entity_id, body)
            except TransportError as exc:
                # Rows from a load that finished mid-request are newer than `current`.
                if optimistic and self._collection_version == version and entity_id in self._store:
                    self._store.put(entity_id, current)
                logger.warning("Update %s %r failed: %s", self.spec.label, entity_id, exc)
                return err_from_exception(exc, fallback_message)

            if updated.get(self.spec.id_field) is None:
                updated = {**current, **body, **updated, self.spec.id_field: entity_id}
            if entity_id in self._store:
                self._store.put(entity_id, updated)
            logger.info("Updated %s %r", self.spec.label, entity_id)
        finally:
            self._mutations.pop(entity_id, None)

        if self.spec.refresh_after_write and not optimistic:
            await self.load()
        return Ok(updated)

    def request_delete(self, entity_id: Any) -> Result[DeleteIntent]:
        """Start a delete that must be confirmed before anything is sent."""
        entity = self._store.get(entity_id)
        if entity is None:
            return Err(ErrorKind.NOT_FOUND, f"{self.spec.label.capitalize()} not found")
        guard_message = self._guard_message(entity)
        if guard_message is not None:
            return Err(ErrorKind.BLOCKED, guard_message)
        return Ok(DeleteIntent(self, entity))

    async def remove(self, entity_id: Any) -> Result[None]:
        fallback_message = f"Failed to delete {self.spec.label}"
        with list_span("delete", page=self.spec.name) as span:
            result = await self._remove(entity_id, fallback_message)
            if isinstance(result, Err):
                span.fail(result.kind.value, result.message)
            return result

    async def _remove(self, entity_id: Any, fallback_message: str) -> Result[None]:
        blocked = self._begin(entity_id)
        if blocked is not None:
            return blocked
        try:
            entity = self._store.get(entity_id)
            if entity is None:
                return Err(ErrorKind.NOT_FOUND, f"{self.spec.label.capitalize()} not found")
            guard_message = self._guard_message(entity)
            if guard_message is not None:
                return Err(ErrorKind.BLOCKED, guard_message)

            self._mutations[entity_id] = MutationState.SUBMITTING
            optimistic = self.spec.delete_mode is MutationMode.OPTIMISTIC
            version = self._collection_version
            removed = self._store.remove(entity_id) if optimistic else None

            try:
                await self._client.delete(entity_id)
            except TransportError as exc:
                restorable = removed is not None and self._collection_version == version
                if restorable and entity_id not in self._store:
                    index, original = removed
                    self._store.insert(original, index)
                logger.warning("Delete %s %r failed: %s", self.spec.label, entity_id, exc)
                return err_from_exception(exc, fallback_message)

            if not optimistic:
                self._store.remove(entity_id)
            logger.info("Deleted %s %r", self.spec.label, entity_id)
        finally:
            self._mutations.pop(entity_id, None)

        if self.spec.refresh_after_write and not optimistic:
            await self.load()
        return Ok(None)

    async def perform(
        self,
        entity_id: Any,
        action: str | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> Result[dict[str, Any]]:
        """Run a server-side entity action (e.g. check-in), then reload the list."""
        fallback_message = f"Failed to {action or 'process'} {self.spec.label}"
        with list_span(f"action.{action or 'default'}", page=self.spec.name) as span:
            blocked = self._begin(entity_id)
            if blocked is not None:
                span.fail(blocked.kind.value, blocked.message)
                return blocked
            try:
                if entity_id not in self._store:
                    return Err(ErrorKind.NOT_FOUND, f"{self.spec.label.capitalize()} not found")
                self._mutations[entity_id] = MutationState.SUBMITTING
                try:
                    response = await self._client.action(entity_id, action, dict(payload or {}))
                except TransportError as exc:
                    logger.warning(
                        "Action %s on %s %r failed: %s", action, self.spec.label, entity_id, exc
                    )
                    span.fail(exc.kind.value, str(exc))
                    return err_from_exception(exc, fallback_message)
            finally:
                self._mutations.pop(entity_id, None)

        await self.load()
        return Ok(response)

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------

    def _begin(self, entity_id: Any) -> Err | None:
        if entity_id in self._mutations:
            return Err(
                ErrorKind.BLOCKED,
                f"Another change to this {self.spec.label} is still in progress",
            )
        self._mutations[entity_id] = MutationState.VALIDATING
        return None

    def _guard_message(self, entity: Entity) -> str | None:
        if self.spec.delete_guard is None:
            return None
        return self.spec.delete_guard(entity)

    def _validate(self, data: Mapping[str, Any]) -> dict[str, Any] | Err:
        model = self.spec.input_model
        if model is None:
            return dict(data)
        try:
            parsed = model.model_validate(dict(data))
        except PydanticValidationError as exc:
            return err_from_validation(exc)
        return {**dict(data), **parsed.model_dump()}

