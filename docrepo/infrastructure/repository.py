import logging
from typing import (
    Any, Awaitable, Callable, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union,
)

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.results import DeleteResult, UpdateResult

from docrepo.domain.exceptions import DeleteFailedException, UpdateFailedException
from docrepo.domain.models import (
    InsertManyOptions, ListOptions, Page, PopulateOptions, QueryOptions, UpdateOptions,
)
from docrepo.infrastructure.identifiers import (
    ID_FIELD, KEY_FIELD, denormalize_result, normalize_query, strip_identifier,
)
from docrepo.infrastructure.pagination import (
    build_list_query, build_page, parse_sort, rewrite_sort, select_fields,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Mapping[str, Any])

Document = Dict[str, Any]
Populate = Union[PopulateOptions, Sequence[PopulateOptions]]


def _coerce_key(value: Any) -> Any:
    """Casts 24-hex-character strings to ObjectId, leaving other values alone."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _read_kwargs(options: Optional[QueryOptions]) -> Dict[str, Any]:
    if options is None:
        return {}

    kwargs: Dict[str, Any] = {}
    if options.sort:
        kwargs["sort"] = parse_sort(rewrite_sort(options.sort))
    if options.skip is not None:
        kwargs["skip"] = options.skip
    if options.limit is not None:
        kwargs["limit"] = options.limit
    if options.session is not None:
        kwargs["session"] = options.session
    return kwargs


def _is_reference(value: Any) -> bool:
    # Already populated documents are left as they are.
    return value is not None and not isinstance(value, Mapping)


def _join_projection(option: PopulateOptions) -> Optional[Dict[str, int]]:
    """The populate projection, always keeping the field joined on."""
    projection = select_fields(option.select)
    if projection is None:
        return None
    if any(projection.values()):
        projection[option.foreign_field] = 1
    else:
        projection.pop(option.foreign_field, None)
    return projection or None


def _prepare_update(update: Any) -> Any:
    """
    Strips the public identifier from an update and wraps a plain partial
    entity in $set. Pipeline-style updates (lists) are passed through.
    """
    if not isinstance(update, Mapping):
        return update

    document = strip_identifier(update)
    if not any(key.startswith("$") for key in document):
        return {"$set": document}

    return {
        operator: strip_identifier(fields) if isinstance(fields, Mapping) else fields
        for operator, fields in document.items()
    }


class BaseRepository(Generic[T]):
    """
    Generic repository over a single MongoDB collection.

    Callers work with the public `id` field; the store keeps `_id`. Every
    operation goes through `_dispatch`, which rewrites the incoming query and
    exposes `id` on entities coming back, according to TRANSFORMS.
    """

    # operation -> (normalize first argument, denormalize result).
    # Operations not listed get both.
    TRANSFORMS: Dict[str, Tuple[bool, bool]] = {
        "create": (False, True),
        "insert_many": (False, True),
        "populate": (False, True),
        "aggregate": (False, True),
        "find_all": (True, False),
        "update_by_id": (True, False),
        "delete_by_id": (True, False),
        "update_one": (True, False),
        "update_many": (True, False),
        "delete_many": (True, False),
        "count": (True, False),
    }

    # Cast 24-hex `_id` strings to ObjectId before hitting the store.
    cast_object_ids = True

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def _dispatch(
        self,
        operation: str,
        argument: Any,
        call: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        normalize, denormalize = self.TRANSFORMS.get(operation, (True, True))

        if normalize:
            query = normalize_query(argument)
            if query is not None:
                argument = self._cast_key(query)

        logger.debug(f"Dispatching {operation} on '{self.collection.name}'.")
        result = await call(argument)

        if denormalize:
            denormalize_result(result)
        return result

    def _cast_key(self, query: Document) -> Document:
        if not self.cast_object_ids or KEY_FIELD not in query:
            return query

        value = query[KEY_FIELD]
        if isinstance(value, str):
            query[KEY_FIELD] = _coerce_key(value)
        elif isinstance(value, Mapping) and isinstance(value.get("$in"), list):
            query[KEY_FIELD] = {**value, "$in": [_coerce_key(item) for item in value["$in"]]}
        return query

    def _remove_none_values(self, document: Dict[str, Any]) -> None:
        """Drops keys whose value is None, in place."""
        for key in [key for key, value in document.items() if value is None]:
            del document[key]

    def _create_set_of_sub_document(
        self, sub_document_name: str, sub_document: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """
        Builds the body of a $set that updates the array element matched by
        the query's positional operator.

        Returns:
            Dict[str, Any]: e.g. {"items.$.qty": 3} for ("items", {"qty": 3}).
        """
        return {f"{sub_document_name}.$.{key}": value for key, value in sub_document.items()}

    def _create_object_id(self) -> str:
        return str(ObjectId())

    async def create(
        self, entity: Mapping[str, Any], session: Optional[AsyncIOMotorClientSession] = None
    ) -> T:
        """
        Inserts a new entity. Any `id`/`_id` on the payload is discarded; the
        store assigns the key.

        Args:
            entity (Mapping[str, Any]): Fields of the new entity.
            session (Optional[AsyncIOMotorClientSession]): Transaction to join.

        Returns:
            T: The stored entity, exposing both `_id` and `id`.
        """
        return await self._dispatch("create", entity, lambda payload: self._create(payload, session))

    async def _create(self, entity: Mapping[str, Any], session) -> Document:
        document = strip_identifier(entity, ID_FIELD, KEY_FIELD)
        result = await self.collection.insert_one(document, session=session)
        document[KEY_FIELD] = result.inserted_id
        return document

    async def update_by_id(self, entity_id: str, document: Mapping[str, Any]) -> bool:
        """
        Updates the entity with the given id.

        Returns:
            bool: True if at least one field changed, False if the document
            matched but was left as it was.

        Raises:
            UpdateFailedException: If no document has this id.
        """
        return await self._dispatch(
            "update_by_id", entity_id, lambda key: self._update_by_id(key, document)
        )

    async def _update_by_id(self, entity_id: str, document: Mapping[str, Any]) -> bool:
        raw = await self.collection.update_one(
            self._cast_key({KEY_FIELD: entity_id}), _prepare_update(document)
        )
        if raw.matched_count == 0:
            logger.warning(f"Update on '{self.collection.name}' matched no document for id {entity_id}.")
            raise UpdateFailedException(entity_id)
        return raw.modified_count > 0

    async def delete_by_id(self, entity_id: str) -> bool:
        """
        Deletes the entity with the given id.

        Raises:
            DeleteFailedException: If no document has this id.
        """
        return await self._dispatch("delete_by_id", entity_id, self._delete_by_id)

    async def _delete_by_id(self, entity_id: str) -> bool:
        raw = await self.collection.delete_one(self._cast_key({KEY_FIELD: entity_id}))
        if raw.deleted_count == 0:
            logger.warning(f"Delete on '{self.collection.name}' matched no document for id {entity_id}.")
            raise DeleteFailedException(entity_id)
        return True

    async def find(
        self,
        query: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        options: Optional[QueryOptions] = None,
    ) -> List[T]:
        return await self._dispatch(
            "find",
            query,
            lambda q: self.collection.find(q, projection, **_read_kwargs(options)).to_list(length=None),
        )

    async def find_one(
        self,
        query: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        options: Optional[QueryOptions] = None,
    ) -> Optional[T]:
        return await self._dispatch(
            "find_one",
            query,
            lambda q: self.collection.find_one(q, projection, **_read_kwargs(options)),
        )

    async def find_one_and_update(
        self,
        query: Mapping[str, Any],
        update: Mapping[str, Any],
        options: Optional[QueryOptions] = None,
    ) -> T:
        """Updates the first match, inserting it when missing, and returns the new state."""
        kwargs = _read_kwargs(options)
        kwargs.pop("skip", None)
        kwargs.pop("limit", None)

        return await self._dispatch(
            "find_one_and_update",
            query,
            lambda q: self.collection.find_one_and_update(
                q,
                _prepare_update(update),
                upsert=True,
                return_document=ReturnDocument.AFTER,
                **kwargs,
            ),
        )

    async def find_all(
        self, query: Optional[Mapping[str, Any]] = None, options: Optional[ListOptions] = None
    ) -> Page[T]:
        """
        Returns one page of matching entities along with the total match count.

        Limits outside [1, 50] are reset to 50 and pages below 1 to 1. The sort
        defaults to the identifier.
        """
        return await self._dispatch("find_all", query, lambda q: self._find_all(q, options))

    async def _find_all(self, query: Optional[Document], options: Optional[ListOptions]) -> Page:
        query = query if query is not None else {}
        list_query = build_list_query(options)

        total = await self.collection.count_documents(query)
        items = await self.collection.find(
            query,
            list_query.projection,
            skip=list_query.skip,
            limit=list_query.limit,
            sort=list_query.sort,
        ).to_list(length=None)

        denormalize_result(items)
        return build_page(total, list_query, items)

    async def count(self, query: Optional[Mapping[str, Any]] = None) -> int:
        return await self._dispatch(
            "count", query, lambda q: self.collection.count_documents(q if q is not None else {})
        )

    async def update_one(
        self,
        query: Mapping[str, Any],
        update: Any,
        options: Optional[UpdateOptions] = None,
    ) -> UpdateResult:
        options = options or UpdateOptions()
        return await self._dispatch(
            "update_one",
            query,
            lambda q: self.collection.update_one(
                q, _prepare_update(update), upsert=options.upsert, session=options.session
            ),
        )

    async def update_many(
        self,
        query: Mapping[str, Any],
        update: Any,
        options: Optional[UpdateOptions] = None,
    ) -> UpdateResult:
        options = options or UpdateOptions()
        return await self._dispatch(
            "update_many",
            query,
            lambda q: self.collection.update_many(
                q, _prepare_update(update), upsert=options.upsert, session=options.session
            ),
        )

    async def delete_many(
        self, query: Mapping[str, Any], session: Optional[AsyncIOMotorClientSession] = None
    ) -> DeleteResult:
        return await self._dispatch(
            "delete_many", query, lambda q: self.collection.delete_many(q, session=session)
        )

    async def aggregate(
        self,
        pipeline: Union[Sequence[Mapping[str, Any]], Mapping[Any, Mapping[str, Any]]],
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> List[Document]:
        """
        Runs an aggregation pipeline. A mapping of stages is accepted and
        dispatched in its iteration order.
        """
        return await self._dispatch(
            "aggregate",
            pipeline,
            lambda stages: self.collection.aggregate(
                list(stages.values() if isinstance(stages, Mapping) else stages),
                session=session,
            ).to_list(length=None),
        )

    async def insert_many(
        self,
        entities: Sequence[Mapping[str, Any]],
        options: Optional[InsertManyOptions] = None,
    ) -> List[T]:
        return await self._dispatch(
            "insert_many", entities, lambda payload: self._insert_many(payload, options)
        )

    async def _insert_many(
        self, entities: Sequence[Mapping[str, Any]], options: Optional[InsertManyOptions]
    ) -> List[Document]:
        options = options or InsertManyOptions()
        documents = [strip_identifier(entity, ID_FIELD, KEY_FIELD) for entity in entities]

        result = await self.collection.insert_many(
            documents, ordered=options.ordered, session=options.session
        )
        for document, key in zip(documents, result.inserted_ids):
            document[KEY_FIELD] = key
        return documents

    async def populate(
        self, documents: Union[Document, Sequence[Document]], options: Populate
    ) -> Union[T, List[T]]:
        """
        Replaces references with the documents they point to.

        A single entity in gives a single entity out; a sequence gives a list.
        The given entities are modified in place. A dangling single reference
        becomes None and dangling members of a reference list are dropped.
        """
        return await self._dispatch("populate", documents, lambda docs: self._populate(docs, options))

    async def _populate(
        self, documents: Union[Document, Sequence[Document]], options: Populate
    ) -> Union[Document, List[Document]]:
        single = isinstance(documents, Mapping)
        entities = [documents] if single else list(documents)

        for option in [options] if isinstance(options, PopulateOptions) else options:
            await self._populate_path(entities, option)

        return entities[0] if single else entities

    async def _populate_path(self, entities: List[Document], option: PopulateOptions) -> None:
        lookup = _coerce_key if option.foreign_field == KEY_FIELD and self.cast_object_ids else (lambda v: v)

        references = []
        for entity in entities:
            value = entity.get(option.path)
            references.extend(value if isinstance(value, list) else [value])
        keys = [lookup(reference) for reference in references if _is_reference(reference)]
        if not keys:
            return

        joined = await self.collection.database[option.collection].find(
            {option.foreign_field: {"$in": keys}}, _join_projection(option)
        ).to_list(length=None)
        denormalize_result(joined)
        by_key = {document.get(option.foreign_field): document for document in joined}

        for entity in entities:
            if option.path not in entity:
                continue
            value = entity[option.path]
            if isinstance(value, list):
                entity[option.path] = [
                    by_key[lookup(v)] if _is_reference(v) else v
                    for v in value
                    if not _is_reference(v) or lookup(v) in by_key
                ]
            elif _is_reference(value):
                entity[option.path] = by_key.get(lookup(value))

    async def find_and_populate(
        self,
        query: Optional[Mapping[str, Any]],
        options: Populate,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> List[T]:
        return await self._dispatch(
            "find_and_populate", query, lambda q: self._find_and_populate(q, options, projection)
        )

    async def _find_and_populate(
        self, query: Optional[Document], options: Populate, projection: Optional[Mapping[str, Any]]
    ) -> List[Document]:
        documents = await self.collection.find(query, projection).to_list(length=None)
        return await self._populate(documents, options)
