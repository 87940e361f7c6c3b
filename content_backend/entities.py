"""
Schema descriptors for every content type served by the backend.

The routes, validator, repository and upload lifecycle manager are all
generic; each content type is described once here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from content_backend.assets import AssetKind, AssetRef


@dataclass(frozen=True)
class TextField:
    name: str
    required: bool = False


@dataclass(frozen=True)
class NumberField:
    name: str
    default: float
    minimum: float
    maximum: float
    integer: bool = True


@dataclass(frozen=True)
class DateField:
    name: str


@dataclass(frozen=True)
class AssetField:
    """An upload slot on a content type.

    ``many`` fields hold an ordered list of ``{"url", "publicId"}`` objects
    under ``name``; single fields are flattened into ``<name>Url`` and
    ``<name>PublicId``. ``standalone`` fields are only managed through the
    dedicated attach/detach endpoints.
    """

    name: str
    kind: AssetKind
    required: bool = False
    many: bool = False
    max_count: int = 1
    standalone: bool = False
    label: Optional[str] = None

    @property
    def url_key(self) -> str:
        return f"{self.name}Url"

    @property
    def id_key(self) -> str:
        return f"{self.name}PublicId"

    @property
    def display_name(self) -> str:
        return self.label or self.name

    def read(self, doc: dict) -> list[AssetRef]:
        """Return every reference this field holds on ``doc`` in display order."""
        if self.many:
            return [
                AssetRef(url=item["url"], id=item["publicId"], kind=self.kind)
                for item in doc.get(self.name) or []
            ]
        ref = AssetRef.from_pair(doc.get(self.url_key), doc.get(self.id_key), self.kind)
        return [ref] if ref else []

    def encode(self, refs: list[AssetRef]) -> dict:
        """Return the document fields storing ``refs`` (empty clears the field)."""
        if self.many:
            return {self.name: [{"url": ref.url, "publicId": ref.id} for ref in refs]}
        ref = refs[0] if refs else None
        return {
            self.url_key: ref.url if ref else None,
            self.id_key: ref.id if ref else None,
        }


@dataclass(frozen=True)
class EntitySchema:
    name: str
    singular: str
    plural: str
    route: str
    site: str
    folder: str
    text_fields: tuple[TextField, ...] = ()
    number_fields: tuple[NumberField, ...] = ()
    date_fields: tuple[DateField, ...] = ()
    asset_fields: tuple[AssetField, ...] = ()
    sort_field: str = "createdAt"

    @property
    def collection(self) -> str:
        return self.plural

    @property
    def required_text(self) -> list[str]:
        return [f.name for f in self.text_fields if f.required]

    def asset_field(self, name: str) -> AssetField:
        for asset in self.asset_fields:
            if asset.name == name:
                return asset
        raise KeyError(f"{self.name} has no asset field {name!r}")

    @property
    def form_asset_fields(self) -> list[AssetField]:
        """Asset fields accepted on create and update requests."""
        return [a for a in self.asset_fields if not a.standalone]

    @property
    def standalone_asset_fields(self) -> list[AssetField]:
        return [a for a in self.asset_fields if a.standalone]

    def empty_assets(self) -> dict:
        """Document fields for an entity holding no assets at all."""
        doc: dict = {}
        for asset in self.asset_fields:
            doc.update(asset.encode([]))
        return doc

    def owned_assets(self, doc: dict) -> list[tuple[AssetField, AssetRef]]:
        owned: list[tuple[AssetField, AssetRef]] = []
        for asset in self.asset_fields:
            owned.extend((asset, ref) for ref in asset.read(doc))
        return owned

    def namespace(self, root: str, kind: AssetKind) -> str:
        base = f"{root}-{self.folder}" if root else self.folder
        if kind == AssetKind.VIDEO:
            return f"{base}/videos"
        if kind == AssetKind.DOCUMENT:
            return f"{base}/documents"
        return base


PROJECT = EntitySchema(
    name="Project",
    singular="project",
    plural="projects",
    route="/projects",
    site="portfolio",
    folder="projects",
    text_fields=(
        TextField("projectName", required=True),
        TextField("websiteLink", required=True),
        TextField("description"),
    ),
    asset_fields=(
        AssetField("mainPicture", AssetKind.IMAGE, required=True, label="Main picture"),
        AssetField("pictures", AssetKind.IMAGE, many=True, max_count=10),
        AssetField("video", AssetKind.VIDEO, standalone=True, label="Video file"),
    ),
    sort_field="uploadDate",
)

TESTIMONIAL = EntitySchema(
    name="Testimonial",
    singular="testimonial",
    plural="testimonials",
    route="/testimonials",
    site="marketing",
    folder="testimonials",
    text_fields=(
        TextField("name", required=True),
        TextField("message", required=True),
        TextField("role"),
        TextField("company"),
    ),
    number_fields=(NumberField("rating", default=5, minimum=1, maximum=5),),
    asset_fields=(AssetField("photo", AssetKind.IMAGE),),
)

BLOG_POST = EntitySchema(
    name="BlogPost",
    singular="blogPost",
    plural="blogPosts",
    route="/blog-posts",
    site="marketing",
    folder="blog",
    text_fields=(
        TextField("title", required=True),
        TextField("content", required=True),
        TextField("author"),
        TextField("excerpt"),
    ),
    date_fields=(DateField("postDate"),),
    asset_fields=(AssetField("image", AssetKind.IMAGE),),
)

PROGRAM = EntitySchema(
    name="Program",
    singular="program",
    plural="programs",
    route="/programs",
    site="nonprofit",
    folder="programs",
    text_fields=(
        TextField("title", required=True),
        TextField("description", required=True),
        TextField("category"),
    ),
    asset_fields=(
        AssetField("icon", AssetKind.IMAGE),
        AssetField("images", AssetKind.IMAGE, many=True, max_count=10),
    ),
)

PARTNER = EntitySchema(
    name="Partner",
    singular="partner",
    plural="partners",
    route="/partners",
    site="nonprofit",
    folder="partners",
    text_fields=(
        TextField("name", required=True),
        TextField("websiteLink"),
        TextField("description"),
    ),
    asset_fields=(AssetField("image", AssetKind.IMAGE),),
)

SHOP_ITEM = EntitySchema(
    name="ShopItem",
    singular="shopItem",
    plural="shopItems",
    route="/shop-items",
    site="nonprofit",
    folder="shop",
    text_fields=(
        TextField("name", required=True),
        TextField("description"),
        TextField("purchaseLink"),
    ),
    number_fields=(
        NumberField("price", default=0, minimum=0, maximum=1_000_000, integer=False),
    ),
    asset_fields=(AssetField("image", AssetKind.IMAGE, required=True, label="Image"),),
)

SOCIAL_LINK = EntitySchema(
    name="SocialLink",
    singular="socialLink",
    plural="socialLinks",
    route="/social-links",
    site="nonprofit",
    folder="social",
    text_fields=(
        TextField("platform", required=True),
        TextField("url", required=True),
    ),
    asset_fields=(AssetField("icon", AssetKind.IMAGE),),
)

PDF_DOCUMENT = EntitySchema(
    name="PDFDocument",
    singular="pdfDocument",
    plural="pdfDocuments",
    route="/pdf-documents",
    site="nonprofit",
    folder="documents",
    text_fields=(
        TextField("title", required=True),
        TextField("description"),
    ),
    asset_fields=(AssetField("pdf", AssetKind.DOCUMENT, required=True, label="PDF file"),),
)

SITES: dict[str, tuple[EntitySchema, ...]] = {
    "portfolio": (PROJECT,),
    "marketing": (TESTIMONIAL, BLOG_POST),
    "nonprofit": (PROGRAM, PARTNER, SHOP_ITEM, SOCIAL_LINK, PDF_DOCUMENT),
}


def schemas_for_sites(sites: list[str]) -> list[EntitySchema]:
    selected: list[EntitySchema] = []
    for site in sites:
        if site not in SITES:
            raise ValueError(f"Unknown site {site!r}; expected one of {sorted(SITES)}")
        selected.extend(SITES[site])
    return selected
