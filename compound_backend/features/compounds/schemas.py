"""Pydantic models for the compound document as it travels over the API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from compound_backend.config import get_settings

STATUS_VALUES = ("Mới", "Đã biết")

# Wire name of each spectral channel, in display order.
SPECTRAL_CHANNELS = (
    "1h",
    "13c",
    "dept",
    "hsqc",
    "hmbc",
    "cosy",
    "noesy",
    "roesy",
    "hrms",
    "lrms",
    "ir",
    "uv_pho",
    "cd",
)

REQUIRED_TEXT_FIELDS = ("tenHC", "loaiHC", "trangThai", "mau")


def normalise_references(value: Any) -> List[str]:
    """Accept a legacy single string or a list and return the non-blank references."""

    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str) and item.strip()]
    return []


def is_valid_reference(reference: str) -> bool:
    if not reference:
        return True
    if reference.startswith(("http://", "https://", "data:image/")):
        return True
    return reference.startswith(f"/{get_settings().minio_bucket}/")


class _DocumentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any, info: ValidationInfo) -> Any:
        field = cls.model_fields.get(info.field_name or "")
        if field is None or field.annotation is not str:
            return value
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class UVSklm(BaseModel):
    """Thin-layer chromatography UV indicator pair."""

    nm254: bool = False
    nm365: bool = False


class SpectralRecord(BaseModel):
    """One ordered list of file references per spectral channel."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    h1: List[str] = Field(default_factory=list, alias="1h")
    c13: List[str] = Field(default_factory=list, alias="13c")
    dept: List[str] = Field(default_factory=list)
    hsqc: List[str] = Field(default_factory=list)
    hmbc: List[str] = Field(default_factory=list)
    cosy: List[str] = Field(default_factory=list)
    noesy: List[str] = Field(default_factory=list)
    roesy: List[str] = Field(default_factory=list)
    hrms: List[str] = Field(default_factory=list)
    lrms: List[str] = Field(default_factory=list)
    ir: List[str] = Field(default_factory=list)
    uv_pho: List[str] = Field(default_factory=list)
    cd: List[str] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> List[str]:
        return normalise_references(value)

    def channels(self) -> Dict[str, List[str]]:
        """Return ``{wire channel name: references}`` in display order."""

        return self.model_dump(by_alias=True)

    def references(self) -> List[str]:
        return [reference for files in self.channels().values() for reference in files]


class NMRSignal(_DocumentModel):
    id: str = ""
    viTri: str = Field(default="", description="Position label")
    scab: str = Field(default="", description="Carbon shift, free text")
    shacJHz: str = Field(default="", description="Proton shift and coupling, free text")
    sortOrder: str = ""


class NMRCondition(_DocumentModel):
    id: str = ""
    dmNMR: str = Field(default="", description="NMR solvent")
    tanSo13C: str = ""
    tanSo1H: str = ""


class NMRDataBlock(_DocumentModel):
    id: str = ""
    sttBang: str = Field(default="", description="System-assigned table number")
    nmrConditions: NMRCondition = Field(default_factory=NMRCondition)
    signals: List[NMRSignal] = Field(default_factory=list)
    luuYNMR: str = ""
    tltkNMR: str = ""

    @field_validator("nmrConditions", mode="before")
    @classmethod
    def _default_conditions(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("signals", mode="before")
    @classmethod
    def _default_signals(cls, value: Any) -> Any:
        return [] if value is None else value


class CompoundDocument(_DocumentModel):
    """The nested compound aggregate returned by every read."""

    id: str
    sttHC: Optional[int] = None
    tenHC: str = ""
    tenHCKhac: str = ""
    loaiHC: str = ""
    status: str = ""
    tenLatin: str = ""
    tenTA: str = ""
    tenTV: str = ""
    bpnc: str = ""
    nguonKhac: str = ""
    trangThai: str = ""
    mau: str = ""
    uvSklm: UVSklm = Field(default_factory=UVSklm)
    diemNongChay: str = ""
    alphaD: str = ""
    dungMoiHoaTanTCVL: str = ""
    ctpt: str = ""
    klpt: str = ""
    hinhCauTruc: str = ""
    cauHinhTuyetDoi: bool = False
    smiles: str = ""
    pho: SpectralRecord = Field(default_factory=SpectralRecord)
    dmNMRGeneral: str = ""
    cartCoor: str = ""
    imgFreq: str = ""
    te: str = ""
    nmrData: List[NMRDataBlock] = Field(default_factory=list)
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    def file_references(self) -> List[str]:
        """Every distinct object-store reference held, structure image first."""

        candidates = [self.hinhCauTruc, *self.pho.references()]
        return [reference for reference in dict.fromkeys(candidates) if reference]

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class CompoundPayload(_DocumentModel):
    """Fields accepted on write. ``None`` means "not supplied"."""

    sttHC: Optional[int] = Field(default=None, ge=1)
    tenHC: Optional[str] = None
    tenHCKhac: Optional[str] = None
    loaiHC: Optional[str] = None
    status: Optional[Literal["Mới", "Đã biết"]] = None
    tenLatin: Optional[str] = None
    tenTA: Optional[str] = None
    tenTV: Optional[str] = None
    bpnc: Optional[str] = None
    nguonKhac: Optional[str] = None
    trangThai: Optional[str] = None
    mau: Optional[str] = None
    uvSklm: Optional[UVSklm] = None
    diemNongChay: Optional[str] = None
    alphaD: Optional[str] = None
    dungMoiHoaTanTCVL: Optional[str] = None
    ctpt: Optional[str] = None
    klpt: Optional[str] = None
    hinhCauTruc: Optional[str] = None
    cauHinhTuyetDoi: Optional[bool] = None
    smiles: Optional[str] = None
    pho: Optional[SpectralRecord] = None
    dmNMRGeneral: Optional[str] = None
    cartCoor: Optional[str] = None
    imgFreq: Optional[str] = None
    te: Optional[str] = None
    nmrData: Optional[List[NMRDataBlock]] = Field(default=None, min_length=1)

    @field_validator(*REQUIRED_TEXT_FIELDS)
    @classmethod
    def _required_text(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is None:
            return value
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{info.field_name} must not be empty")
        return stripped

    @field_validator("hinhCauTruc")
    @classmethod
    def _structure_reference(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_reference(value):
            raise ValueError("hinhCauTruc must be a URL, a data URI or an uploaded file path")
        return value

    @field_validator("pho")
    @classmethod
    def _spectral_references(cls, value: Optional[SpectralRecord]) -> Optional[SpectralRecord]:
        if value is None:
            return value
        for channel, references in value.channels().items():
            for reference in references:
                if not is_valid_reference(reference):
                    raise ValueError(f"pho.{channel} contains an unsupported file reference")
        return value


class CompoundCreate(CompoundPayload):
    """Body of ``POST /compounds``."""

    tenHC: str = Field(..., description="Compound name")
    loaiHC: str = Field(..., description="Compound type")
    status: Literal["Mới", "Đã biết"] = Field(..., description="Novelty status")
    trangThai: str = Field(..., description="Physical state")
    mau: str = Field(..., description="Colour")
    nmrData: List[NMRDataBlock] = Field(default_factory=lambda: [NMRDataBlock()], min_length=1)


class CompoundUpdate(CompoundPayload):
    """Body of ``PUT /compounds/{id}``; omitted fields keep their stored value."""

    updatedAt: Optional[datetime] = Field(
        default=None,
        description="When supplied the update only applies if the stored row is unchanged",
    )


class Pagination(BaseModel):
    totalItems: int
    totalPages: int
    currentPage: int
    limit: int


class SignalCSVRequest(BaseModel):
    csv: str = Field(..., description="Lines of position, carbon shift, proton shift")


__all__ = [
    "CompoundCreate",
    "CompoundDocument",
    "CompoundPayload",
    "CompoundUpdate",
    "NMRCondition",
    "NMRDataBlock",
    "NMRSignal",
    "Pagination",
    "REQUIRED_TEXT_FIELDS",
    "SPECTRAL_CHANNELS",
    "STATUS_VALUES",
    "SignalCSVRequest",
    "SpectralRecord",
    "UVSklm",
    "is_valid_reference",
    "normalise_references",
]
