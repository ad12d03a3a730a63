"""
SQLAlchemy ORM models for the ChemSearch primary store.

One table, ``compounds``, keyed by a surrogate ``id`` with a unique
constraint on the PubChem ``cid``. SQLite has no array type, so
``synonyms`` and ``chemical_class`` are JSON arrays and ``properties`` is
an open JSON object.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..types import Compound


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class CompoundRecord(Base):
    """
    Canonical compound row.

    The primary store is the system of record; the vector index holds a
    derived copy that may lag behind until ``is_processed`` is set.
    """
    __tablename__ = "compounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cid: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    # Identification
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    iupac_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    formula: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    molecular_weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Structure identifiers (stored verbatim, never validated)
    inchi: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    inchi_key: Mapped[Optional[str]] = mapped_column(String(27), nullable=True, index=True)
    smiles: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    synonyms: Mapped[Optional[list]] = mapped_column(JSON(none_as_null=True), nullable=True)
    chemical_class: Mapped[Optional[list]] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
        comment="Classification labels, e.g. 'Organic compounds'",
    )
    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_processed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True once the compound has been written to the vector index",
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_compounds_name", "name"),
        Index("ix_compounds_molecular_weight", "molecular_weight"),
        Index("ix_compounds_is_processed", "is_processed"),
        CheckConstraint("cid > 0", name="ck_compounds_cid_positive"),
    )

    @classmethod
    def from_compound(cls, compound: Compound) -> "CompoundRecord":
        """Build a new (unsaved) row from a canonical compound."""
        return cls(
            cid=compound.cid,
            name=compound.name,
            iupac_name=compound.iupac_name,
            formula=compound.formula,
            molecular_weight=compound.molecular_weight,
            inchi=compound.inchi,
            inchi_key=compound.inchi_key,
            smiles=compound.smiles,
            description=compound.description,
            image_url=compound.image_url,
            synonyms=list(compound.synonyms) if compound.synonyms else None,
            chemical_class=list(compound.chemical_class) if compound.chemical_class else None,
            properties=dict(compound.properties or {}),
            is_processed=compound.is_processed,
        )

    def to_compound(self) -> Compound:
        """Detach the row into a canonical compound."""
        return Compound(
            id=self.id,
            cid=self.cid,
            name=self.name,
            iupac_name=self.iupac_name,
            formula=self.formula,
            molecular_weight=self.molecular_weight,
            inchi=self.inchi,
            inchi_key=self.inchi_key,
            smiles=self.smiles,
            description=self.description,
            image_url=self.image_url,
            synonyms=list(self.synonyms) if self.synonyms else None,
            chemical_class=list(self.chemical_class) if self.chemical_class else None,
            properties=dict(self.properties or {}),
            is_processed=bool(self.is_processed),
        )

    def __repr__(self) -> str:
        return f"<CompoundRecord(cid={self.cid}, name='{self.name}')>"
