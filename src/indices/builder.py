"""Index builder for site-wide collections, search and meta files."""

from collections import defaultdict
from pathlib import Path
from typing import Any

import structlog

from src.config.effective import EffectiveConfig
from src.crawler.models import Resource, ResourceSet, ResourceType
from src.indices import references
from src.indices.io import AtomicWriter, dump_jsonl
from src.indices.models import EmitReport


logger = structlog.get_logger()

TOPIC_STEP = "enrich-topic-classification"
SEARCH_STEP = "enrich-search-record"
IMAGE_SERVICES_STEP = "extract-image-services"
FOLDER_STEP = "extract-folder-collections"
TOPIC_THUMBNAILS_STEP = "enrich-topic-thumbnails"

FOLDERS_SLUG = "folders"

SEARCH_FIELDS: dict[str, tuple[str, bool]] = {
    # name: (type, optional)
    "id": ("string", False),
    "type": ("string", False),
    "slug": ("string", False),
    "label": ("string", False),
    "full_label": ("string", False),
    "summary": ("string", True),
    "collections": ("string[]", False),
    "topics": ("string[]", False),
    "plaintext": ("string", True),
    "url": ("string", False),
    "thumbnail": ("string", True),
    "totalItems": ("int32", True),
}


class IndexBuilder:
    """Builds the aggregate artifacts from a final enriched ResourceSet.

    Output depends only on the ResourceSet and configuration, so running it
    twice against unchanged input reproduces the same bytes.
    """

    def __init__(self, config: EffectiveConfig, writer: AtomicWriter) -> None:
        """Initialize the index builder.

        Args:
            config: Effective configuration.
            writer: Atomic writer rooted at the build directory.
        """
        self._config = config
        self._writer = writer
        self._server_url = config.server_url
        self._templates = config.site.collection_templates
        self._log = logger.bind(component="indices")

    def build(self, resources: ResourceSet) -> EmitReport:
        """Write every index artifact.

        Args:
            resources: Enriched resources.

        Returns:
            EmitReport of the written files.
        """
        report = EmitReport()
        self._write_collections(resources, report)
        self._write_topics(resources, report)
        self._write_folders(resources, report)
        self._write_search(resources, report)
        self._write_meta(resources, report)
        self._log.info(
            "indices_built",
            files=len(report.files),
            written=report.written,
        )
        return report

    def _write_collections(self, resources: ResourceSet, report: EmitReport) -> None:
        top_level = [r for r in resources.active() if not r.parents]
        root = references.collection(
            self._server_url,
            "",
            "Index",
            [references.reference(r, self._server_url) for r in top_level],
            self._templates.index,
        )
        report.add(self._writer.write_json(Path("collection.json"), root))

        for slug, resource_type, label, template in (
            (
                "manifests",
                ResourceType.MANIFEST,
                "Manifests",
                self._templates.manifests,
            ),
            (
                "collections",
                ResourceType.COLLECTION,
                "Collections",
                self._templates.collections,
            ),
        ):
            items = [
                references.reference(r, self._server_url)
                for r in resources.of_type(resource_type)
            ]
            body = references.collection(
                self._server_url, slug, label, items, template
            )
            report.add(self._writer.write_json(Path(slug) / "collection.json", body))

    def _write_topics(self, resources: ResourceSet, report: EmitReport) -> None:
        """Write topic collections.

        ``topics/collection.json`` is always written, empty when no topics
        were extracted.
        """
        # topic type -> topic id -> (value label, member resources)
        by_type: dict[str, dict[str, tuple[str, list[Resource]]]] = defaultdict(dict)
        type_slugs: dict[str, str] = {}
        for resource in sorted(resources.active(), key=lambda r: r.slug):
            for topic in resource.enriched.get(TOPIC_STEP) or []:
                topic_id = topic["id"]
                type_slugs[topic["type"]] = topic_id.rsplit("/", 1)[0]
                entry = by_type[topic["type"]].setdefault(
                    topic_id, (topic["label"], [])
                )
                if not entry[1] or entry[1][-1] is not resource:
                    entry[1].append(resource)

        type_items: list[dict[str, Any]] = []
        for topic_type in sorted(by_type):
            type_slug = type_slugs[topic_type]
            topics = by_type[topic_type]
            value_items: list[dict[str, Any]] = []
            for topic_id in sorted(topics):
                label, members = topics[topic_id]
                thumbnail = self._topic_thumbnail(topic_id, members)
                body = references.collection(
                    self._server_url,
                    topic_id,
                    label,
                    [references.reference(r, self._server_url) for r in members],
                    thumbnail=thumbnail,
                )
                report.add(
                    self._writer.write_json(Path(topic_id) / "collection.json", body)
                )
                value_items.append(
                    self._generated_reference(topic_id, label, thumbnail)
                )

            type_body = references.collection(
                self._server_url,
                type_slug,
                topic_type,
                value_items,
                self._templates.topics.get(topic_type),
            )
            report.add(
                self._writer.write_json(Path(type_slug) / "collection.json", type_body)
            )
            type_items.append(self._generated_reference(type_slug, topic_type))

        root = references.collection(self._server_url, "topics", "Topics", type_items)
        report.add(self._writer.write_json(Path("topics") / "collection.json", root))

    @staticmethod
    def _topic_thumbnail(topic_id: str, members: list[Resource]) -> str | None:
        for member in members:
            thumbnails = member.enriched.get(TOPIC_THUMBNAILS_STEP) or {}
            if thumbnails.get(topic_id):
                return str(thumbnails[topic_id])
        return None

    def _write_folders(self, resources: ResourceSet, report: EmitReport) -> None:
        """Write collections mirroring the folders of local manifests.

        A folder collection lists the manifests directly inside it, then its
        subfolders. Its thumbnail is the first member's, else the first
        subfolder's. Nothing is written when no manifest has folders.
        """
        members: dict[str, list[Resource]] = defaultdict(list)
        subfolders: dict[str, set[str]] = defaultdict(set)
        roots: set[str] = set()
        for resource in resources.of_type(ResourceType.MANIFEST):
            folders = resource.extracted.get(FOLDER_STEP)
            if not folders:
                continue
            roots.add(folders[0])
            members[folders[-1]].append(resource)
            for parent, child in zip(folders, folders[1:], strict=False):
                subfolders[parent].add(child)
                members.setdefault(child, [])
            members.setdefault(folders[0], [])
        if not roots:
            return

        # Deepest first so parents can borrow a subfolder's thumbnail
        thumbnails: dict[str, str | None] = {}
        for folder in sorted(members, key=lambda f: (-f.count("/"), f)):
            items = [references.reference(r, self._server_url) for r in members[folder]]
            candidates = [references.thumbnail_of(r) for r in members[folder]]
            for child in sorted(subfolders[folder]):
                items.append(
                    self._generated_reference(
                        _folder_slug(child), _folder_label(child), thumbnails[child]
                    )
                )
                candidates.append(thumbnails[child])
            thumbnail = next((url for url in candidates if url), None)
            thumbnails[folder] = thumbnail
            body = references.collection(
                self._server_url,
                _folder_slug(folder),
                _folder_label(folder),
                items,
                thumbnail=thumbnail,
            )
            report.add(
                self._writer.write_json(
                    Path(_folder_slug(folder)) / "collection.json", body
                )
            )

        root = references.collection(
            self._server_url,
            FOLDERS_SLUG,
            "Folders",
            [
                self._generated_reference(
                    _folder_slug(folder), _folder_label(folder), thumbnails[folder]
                )
                for folder in sorted(roots)
            ],
        )
        report.add(
            self._writer.write_json(Path(FOLDERS_SLUG) / "collection.json", root)
        )

    def _generated_reference(
        self, slug: str, label: str, thumbnail: str | None = None
    ) -> dict[str, Any]:
        ref: dict[str, Any] = {
            "id": references.public_url(self._server_url, slug),
            "type": "Collection",
            "label": {"none": [label]},
            "hss:slug": slug,
        }
        if thumbnail:
            ref["thumbnail"] = references.image(thumbnail)
        return ref

    def _write_search(self, resources: ResourceSet, report: EmitReport) -> None:
        search_dir = Path("meta") / "search"
        for resource_type in (ResourceType.MANIFEST, ResourceType.COLLECTION):
            name = f"{resource_type.value.lower()}s"
            records = [
                r.enriched[SEARCH_STEP]
                for r in resources.of_type(resource_type)
                if r.enriched.get(SEARCH_STEP)
            ]
            report.add(
                self._writer.write(search_dir / f"{name}.jsonl", dump_jsonl(records))
            )
            report.add(
                self._writer.write_json(
                    search_dir / f"{name}.schema.json", self._search_schema(name)
                )
            )

    @staticmethod
    def _search_schema(name: str) -> dict[str, Any]:
        return {
            "name": name,
            "format": "record-jsonl",
            "fields": [
                {"name": field, "type": field_type, "optional": optional}
                for field, (field_type, optional) in SEARCH_FIELDS.items()
            ],
        }

    def _write_meta(self, resources: ResourceSet, report: EmitReport) -> None:
        meta_dir = Path("meta")
        ordered = sorted(resources.active(), key=lambda r: r.slug)

        image_services = {
            r.slug: r.extracted[IMAGE_SERVICES_STEP]
            for r in ordered
            if r.extracted.get(IMAGE_SERVICES_STEP)
        }
        report.add(
            self._writer.write_json(
                meta_dir / "image-service-links.json", image_services
            )
        )

        sitemap: dict[str, Any] = {}
        editable: dict[str, str] = {}
        for resource in ordered:
            source: dict[str, Any] = {"type": resource.source.store_type}
            if resource.source.file_path:
                source["filePath"] = resource.source.file_path
            else:
                source["url"] = resource.source.locator
            sitemap[resource.slug] = {
                "type": resource.type.value,
                "label": references.resource_label(resource),
                "source": source,
            }
            editable_path = resource.source.file_path or resource.override_path
            if editable_path:
                editable[resource.slug] = editable_path
        report.add(self._writer.write_json(meta_dir / "sitemap.json", sitemap))
        report.add(self._writer.write_json(meta_dir / "editable.json", editable))


def _folder_slug(folder: str) -> str:
    return f"{FOLDERS_SLUG}/{folder}"


def _folder_label(folder: str) -> str:
    return folder.rsplit("/", 1)[-1]
