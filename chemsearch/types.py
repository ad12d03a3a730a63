"""
Type definitions for ChemSearch.

Defines the canonical compound record, search request/response shapes
and the embedding configuration shared by the storage and search layers.
Python attributes are snake_case; ``to_dict()`` produces the camelCase
wire shape consumed by the route layer.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import SearchQueryValidationError


IMAGE_URL_TEMPLATE = (
    "https://pubchem.ncbi.nlm.nih.gov/image/imagefly.cgi?cid={cid}&width=300&height=300"
)

# bucket -> (lower, lower_inclusive, upper, upper_inclusive)
WEIGHT_BUCKETS: Dict[str, Tuple[Optional[float], bool, Optional[float], bool]] = {
    "lt_100": (None, False, 100.0, False),
    "100-200": (100.0, True, 200.0, True),
    "200-500": (200.0, False, 500.0, True),
    "gt_500": (500.0, False, None, False),
}

NO_CLASS_FILTER = ("", "all")

MAX_PAGE_SIZE = 100


def default_image_url(cid: int) -> str:
    """Build the PubChem structure image URL for a compound."""
    return IMAGE_URL_TEMPLATE.format(cid=cid)


class SearchType(Enum):
    """How a search request should be answered."""
    SEMANTIC = "semantic"
    KEYWORD = "keyword"


class SortOrder(Enum):
    """Result orderings supported by both stores."""
    RELEVANCE = "relevance"
    MOLECULAR_WEIGHT = "molecular_weight"
    NAME = "name"


@dataclass
class Compound:
    """
    Canonical compound record.

    Produced by the normalizer, persisted by the primary store and
    projected into the vector store. ``id`` is the surrogate key assigned
    by the primary store and stays None until the row is inserted.
    """
    cid: int
    name: str
    id: Optional[int] = None
    iupac_name: Optional[str] = None
    formula: Optional[str] = None
    molecular_weight: Optional[float] = None
    inchi: Optional[str] = None
    inchi_key: Optional[str] = None
    smiles: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    synonyms: Optional[List[str]] = None
    chemical_class: Optional[List[str]] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    is_processed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "cid": self.cid,
            "name": self.name,
            "iupacName": self.iupac_name,
            "formula": self.formula,
            "molecularWeight": self.molecular_weight,
            "inchi": self.inchi,
            "inchiKey": self.inchi_key,
            "smiles": self.smiles,
            "description": self.description,
            "imageUrl": self.image_url,
            "synonyms": self.synonyms,
            "chemicalClass": self.chemical_class,
            "properties": self.properties,
            "isProcessed": self.is_processed,
        }


@dataclass
class SearchQuery:
    """
    A validated search request.

    ``chemical_class`` of "" or "all" means no class filter; an empty
    ``molecular_weight`` means no weight filter.
    """
    query: str = ""
    search_type: SearchType = SearchType.SEMANTIC
    molecular_weight: str = ""
    chemical_class: str = ""
    sort: SortOrder = SortOrder.RELEVANCE
    page: int = 1
    limit: int = 10

    @property
    def weight_bucket(self) -> Optional[str]:
        return self.molecular_weight or None

    @property
    def class_filter(self) -> Optional[str]:
        label = (self.chemical_class or "").strip()
        if label.lower() in NO_CLASS_FILTER:
            return None
        return label

    @property
    def has_filters(self) -> bool:
        return self.weight_bucket is not None or self.class_filter is not None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def validate(self) -> List[str]:
        """
        Validate the request.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not isinstance(self.search_type, SearchType):
            errors.append(f"searchType must be one of {_choices(SearchType)}")
        if not isinstance(self.sort, SortOrder):
            errors.append(f"sort must be one of {_choices(SortOrder)}")
        if self.molecular_weight and self.molecular_weight not in WEIGHT_BUCKETS:
            errors.append(
                f"molecularWeight must be one of {', '.join(WEIGHT_BUCKETS)} "
                f"(got '{self.molecular_weight}')"
            )
        if not isinstance(self.page, int) or self.page < 1:
            errors.append(f"page must be an integer >= 1 (got {self.page!r})")
        if not isinstance(self.limit, int) or not 1 <= self.limit <= MAX_PAGE_SIZE:
            errors.append(
                f"limit must be an integer between 1 and {MAX_PAGE_SIZE} (got {self.limit!r})"
            )
        if (
            self.search_type is SearchType.KEYWORD
            and not (self.query or "").strip()
            and not self.has_filters
        ):
            errors.append("query is required for keyword search unless a filter is set")

        return errors

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "SearchQuery":
        """
        Build a query from raw request parameters.

        Accepts camelCase or snake_case keys and string values as they
        arrive from a query string. Only searchType, sort, page and limit
        have defaults; anything malformed is reported.

        Raises:
            SearchQueryValidationError: listing every problem found
        """
        errors = []

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in params and params[key] is not None:
                    return params[key]
            return None

        query = cls()

        raw_query = pick("query", "q")
        query.query = "" if raw_query is None else str(raw_query)

        raw_type = pick("searchType", "search_type")
        if raw_type not in (None, ""):
            try:
                query.search_type = SearchType(str(raw_type).strip().lower())
            except ValueError:
                errors.append(
                    f"searchType must be one of {_choices(SearchType)} (got '{raw_type}')"
                )

        raw_sort = pick("sort")
        if raw_sort not in (None, ""):
            try:
                query.sort = SortOrder(str(raw_sort).strip().lower())
            except ValueError:
                errors.append(f"sort must be one of {_choices(SortOrder)} (got '{raw_sort}')")

        raw_weight = pick("molecularWeight", "molecular_weight")
        query.molecular_weight = "" if raw_weight is None else str(raw_weight).strip()

        raw_class = pick("chemicalClass", "chemical_class")
        query.chemical_class = "" if raw_class is None else str(raw_class).strip()

        for name, default in (("page", 1), ("limit", 10)):
            raw = pick(name)
            if raw in (None, ""):
                setattr(query, name, default)
                continue
            try:
                setattr(query, name, int(str(raw).strip()))
            except ValueError:
                errors.append(f"{name} must be an integer (got '{raw}')")
                setattr(query, name, default)

        # Unparseable fields were reset to defaults above, so validate()
        # only reports problems not already listed.
        errors.extend(query.validate())
        if errors:
            raise SearchQueryValidationError(errors)

        return query

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase request shape."""
        return {
            "query": self.query,
            "searchType": self.search_type.value,
            "molecularWeight": self.molecular_weight,
            "chemicalClass": self.chemical_class,
            "sort": self.sort.value,
            "page": self.page,
            "limit": self.limit,
        }


@dataclass
class CompoundSearchResult:
    """
    Search hit: a light projection of a compound.

    ``similarity`` is an integer on a 0-100 scale, set only when the hit
    came from a genuine nearest-neighbour query.
    """
    cid: int
    name: str
    iupac_name: Optional[str] = None
    formula: Optional[str] = None
    molecular_weight: Optional[float] = None
    chemical_class: Optional[List[str]] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    similarity: Optional[int] = None

    @classmethod
    def from_compound(
        cls, compound: Compound, similarity: Optional[int] = None
    ) -> "CompoundSearchResult":
        return cls(
            cid=compound.cid,
            name=compound.name,
            iupac_name=compound.iupac_name,
            formula=compound.formula,
            molecular_weight=compound.molecular_weight,
            chemical_class=compound.chemical_class,
            description=compound.description,
            image_url=compound.image_url or default_image_url(compound.cid),
            similarity=similarity,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = {
            "cid": self.cid,
            "name": self.name,
            "iupacName": self.iupac_name,
            "formula": self.formula,
            "molecularWeight": self.molecular_weight,
            "chemicalClass": self.chemical_class,
            "description": self.description,
            "imageUrl": self.image_url,
        }
        if self.similarity is not None:
            data["similarity"] = self.similarity
        return data


@dataclass
class SearchResponse:
    """One page of search results plus pagination metadata."""
    results: List[CompoundSearchResult]
    total_results: int
    page: int
    total_pages: int
    query: str
    search_type: SearchType = SearchType.KEYWORD
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "results": [result.to_dict() for result in self.results],
            "totalResults": self.total_results,
            "page": self.page,
            "totalPages": self.total_pages,
            "query": self.query,
            "searchType": self.search_type.value,
            "degraded": self.degraded,
        }


def total_pages(total_results: int, limit: int) -> int:
    """Number of pages needed for ``total_results`` at ``limit`` per page."""
    if total_results <= 0 or limit <= 0:
        return 0
    return math.ceil(total_results / limit)


@dataclass
class EmbeddingConfig:
    """Configuration for compound embeddings and the FAISS index."""
    model_name: str = "all-MiniLM-L6-v2"
    embedding_dim: int = 384
    normalize_l2: bool = True
    index_path: str = "data/vectors/compounds.faiss"
    metadata_path: str = "data/vectors/compounds_metadata.json"


def _choices(enum_cls) -> str:
    return ", ".join(member.value for member in enum_cls)
