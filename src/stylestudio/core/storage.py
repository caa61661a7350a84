"""Key-value persistence and the project/image/render collections.

Two layers live in this module:

``KeyValueStore``
    A mapping from string keys to JSON-serialisable values with atomic
    get/set/delete per key.  Nothing spans keys: there are no transactions.
    :class:`InMemoryStore` backs unit tests; :class:`JsonFileStore` keeps one
    JSON file per key on disk.

``LocalStore``
    The three logical collections built on top of a ``KeyValueStore``:

    - ``studio_projects``: every project, newest first
    - ``studio_images_<projectId>``: style images, in upload order
    - ``studio_renders_<projectId>``: render jobs, newest first

Absent keys always read as empty collections, so a fresh store needs no
bootstrapping and there is no schema version to migrate.

Cascade Delete
--------------
Deleting a project touches three keys in sequence: the project list is
rewritten first, then the images key and the renders key are removed.  The
JSON backend cannot make that sequence atomic.  If a child delete fails after
the list rewrite, the child collections are left without a parent; they are
inert (nothing can reach them without the project) and
:meth:`LocalStore.orphaned_keys` reports them.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from stylestudio.core.errors import StoreInconsistency
from stylestudio.core.models import Project, RenderJob, StyleImage

logger = logging.getLogger(__name__)

PROJECTS_KEY = "studio_projects"
IMAGES_KEY_PREFIX = "studio_images_"
RENDERS_KEY_PREFIX = "studio_renders_"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def images_key(project_id: str) -> str:
    """Return the store key holding a project's style images."""
    return f"{IMAGES_KEY_PREFIX}{project_id}"


def renders_key(project_id: str) -> str:
    """Return the store key holding a project's render jobs."""
    return f"{RENDERS_KEY_PREFIX}{project_id}"


# ---------------------------------------------------------------------------
# Key-value backends.
# ---------------------------------------------------------------------------


class KeyValueStore(ABC):
    """Abstract mapping from string keys to JSON values."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default* if absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Replace the value stored under *key*."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*.  Deleting an absent key is a no-op."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return every key currently present."""


class InMemoryStore(KeyValueStore):
    """Dictionary-backed store.

    Values pass through a JSON round trip on every read and write, so the
    store behaves like a real serialising backend: callers never share
    mutable state with it, and non-serialisable values fail at ``set`` time.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """Store that keeps each key in its own ``<key>.json`` file.

    Reads are intentionally forgiving: if the file does not exist, is empty,
    or contains invalid JSON, the caller gets the default value rather than
    an exception.  Writes go to a temporary file in the same directory which
    is then moved over the target, so a key is never observed half-written.

    Args:
        directory: Directory holding the JSON files.  Created if missing.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized JSON store at {self.directory}")

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable store file {path.name}, treating as empty: {e}")
            return default

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote store key {key}")

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        logger.debug(f"Deleted store key {key}")

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))


# ---------------------------------------------------------------------------
# Collections.
# ---------------------------------------------------------------------------


def _load_list(store: KeyValueStore, key: str) -> list[dict]:
    """Read a list-valued key, dropping anything that is not a record dict."""
    raw = store.get(key, [])
    if not isinstance(raw, list):
        logger.warning(f"Store key {key} does not hold a list; treating as empty")
        return []
    return [entry for entry in raw if isinstance(entry, dict)]


class LocalStore:
    """Projects, style images and render jobs over a :class:`KeyValueStore`.

    Ordering conventions are established here by where records are inserted:
    projects and render jobs are prepended (newest first), style images are
    appended (upload order).  Nothing is deduplicated or capped at this layer.

    Every read-modify-write runs under :attr:`lock`, so concurrent requests in
    one process never lose each other's updates.  The lock is re-entrant:
    callers that must check a project and then write to it hold it across
    both steps.

    Args:
        backend: The key-value store to persist into.
    """

    def __init__(self, backend: KeyValueStore) -> None:
        self.backend = backend
        self.lock = threading.RLock()

    # -- Projects -----------------------------------------------------------

    def list_projects(self) -> list[Project]:
        """Return every project, newest first.  Empty if uninitialised."""
        return [Project.model_validate(p) for p in _load_list(self.backend, PROJECTS_KEY)]

    def create_project(
        self,
        name: str,
        description: str | None = None,
        style_descriptor: str | None = None,
        training_instruction: str | None = None,
    ) -> Project:
        """Create a project with a fresh id and timestamp and persist it.

        The new project is placed at the head of the project list and the full
        list is written back.

        Returns:
            The created project.
        """
        project = Project(
            name=name,
            description=description,
            style_descriptor=style_descriptor,
            training_instruction=training_instruction,
        )
        with self.lock:
            projects = _load_list(self.backend, PROJECTS_KEY)
            self.backend.set(PROJECTS_KEY, [project.to_json(), *projects])
        logger.info(f"Created project {project.id} ({project.name!r})")
        return project

    def get_project(self, project_id: str) -> Project | None:
        """Return the project with *project_id*, or ``None``."""
        for entry in _load_list(self.backend, PROJECTS_KEY):
            if entry.get("id") == project_id:
                return Project.model_validate(entry)
        return None

    def delete_project(self, project_id: str) -> None:
        """Delete a project and cascade to its images and renders.

        The three writes are not atomic.  The project list is rewritten first
        so a failure afterwards can only leave inert child collections behind,
        never a visible project with missing children.

        Raises:
            StoreInconsistency: If a child collection could not be removed
                after the project itself was deleted.
        """
        orphaned: list[str] = []
        with self.lock:
            projects = _load_list(self.backend, PROJECTS_KEY)
            self.backend.set(PROJECTS_KEY, [p for p in projects if p.get("id") != project_id])

            for key in (images_key(project_id), renders_key(project_id)):
                try:
                    self.backend.delete(key)
                except Exception as e:
                    logger.error(f"Failed to delete {key} for project {project_id}: {e}")
                    orphaned.append(key)

        if orphaned:
            raise StoreInconsistency(
                f"Project {project_id} was deleted but some of its data could not be removed",
                orphaned_keys=orphaned,
            )
        logger.info(f"Deleted project {project_id}")

    def orphaned_keys(self) -> list[str]:
        """Return image/render keys whose project no longer exists."""
        live_ids = {p.get("id") for p in _load_list(self.backend, PROJECTS_KEY)}
        orphans = []
        for key in self.backend.keys():
            for prefix in (IMAGES_KEY_PREFIX, RENDERS_KEY_PREFIX):
                if key.startswith(prefix) and key[len(prefix) :] not in live_ids:
                    orphans.append(key)
        return sorted(orphans)

    # -- Style images -------------------------------------------------------

    def list_style_images(self, project_id: str) -> list[StyleImage]:
        """Return a project's style images in upload order."""
        return [
            StyleImage.model_validate(i) for i in _load_list(self.backend, images_key(project_id))
        ]

    def append_style_images(self, project_id: str, images: Sequence[str]) -> list[StyleImage]:
        """Append data-URI images to a project's style images.

        Each image gets its own id.  Existing images are kept in front.

        Returns:
            The full, updated list of style images.
        """
        key = images_key(project_id)
        new_images = [StyleImage(project_id=project_id, image_data=data) for data in images]
        with self.lock:
            existing = _load_list(self.backend, key)
            updated = [*existing, *(i.to_json() for i in new_images)]
            self.backend.set(key, updated)
        logger.debug(f"Appended {len(new_images)} style image(s) to project {project_id}")
        return [StyleImage.model_validate(i) for i in updated]

    # -- Render jobs --------------------------------------------------------

    def list_render_jobs(self, project_id: str) -> list[RenderJob]:
        """Return a project's render jobs, newest first."""
        return [
            RenderJob.model_validate(j) for j in _load_list(self.backend, renders_key(project_id))
        ]

    def get_render_job(self, project_id: str, job_id: str) -> RenderJob | None:
        """Return one render job, or ``None``."""
        for entry in _load_list(self.backend, renders_key(project_id)):
            if entry.get("id") == job_id:
                return RenderJob.model_validate(entry)
        return None

    def append_render_job(
        self,
        project_id: str,
        output_image: str,
        reference_image: str | None = None,
        user_instruction: str | None = None,
    ) -> RenderJob:
        """Create a render job with a fresh id and timestamp at the list head."""
        job = RenderJob(
            project_id=project_id,
            reference_image=reference_image,
            user_instruction=user_instruction,
            output_image=output_image,
        )
        key = renders_key(project_id)
        with self.lock:
            jobs = _load_list(self.backend, key)
            self.backend.set(key, [job.to_json(), *jobs])
        logger.info(f"Saved render {job.id} for project {project_id}")
        return job

    def delete_render_job(self, project_id: str, job_id: str) -> None:
        """Remove one render job and rewrite the collection."""
        key = renders_key(project_id)
        with self.lock:
            jobs = _load_list(self.backend, key)
            self.backend.set(key, [j for j in jobs if j.get("id") != job_id])
        logger.info(f"Deleted render {job_id} from project {project_id}")


def create_backend(backend: str, data_dir: Path) -> KeyValueStore:
    """Build the key-value backend named in configuration."""
    if backend == "memory":
        return InMemoryStore()
    if backend == "json":
        return JsonFileStore(data_dir)
    raise ValueError(f"Unknown store backend: {backend}")

