"""Package enrichment from chart archives and artifacthub.io annotations.

Enrichment happens in two steps. First, the package gets the information
available in the chart itself (Chart.yaml, README, LICENSE, values schema
and the images used in its rendered manifest). Then the chart's
``artifacthub.io/*`` annotations are applied on top. Annotations may
override (license, images) or extend (links, maintainers) what was derived
from the chart.
"""

from __future__ import annotations

import re
from typing import Any, Optional

import yaml
from pydantic import TypeAdapter, ValidationError

from hubtracker import license as license_detector
from hubtracker.chart import Chart, parse_schema
from hubtracker.errors import INVALID_ANNOTATION, INVALID_METADATA, AppError, multi_error
from hubtracker.log import logger
from hubtracker.models import (
    Change,
    ContainerImage,
    Link,
    Maintainer,
    Package,
    Recommendation,
    SignKey,
)
from hubtracker.render import DEFAULT_HELM_BIN, extract_containers_images

ANNOTATION_PREFIX = "artifacthub.io/"
CHANGES_ANNOTATION = ANNOTATION_PREFIX + "changes"
CRDS_ANNOTATION = ANNOTATION_PREFIX + "crds"
CRDS_EXAMPLES_ANNOTATION = ANNOTATION_PREFIX + "crdsExamples"
IMAGES_ANNOTATION = ANNOTATION_PREFIX + "images"
LICENSE_ANNOTATION = ANNOTATION_PREFIX + "license"
LINKS_ANNOTATION = ANNOTATION_PREFIX + "links"
MAINTAINERS_ANNOTATION = ANNOTATION_PREFIX + "maintainers"
OPERATOR_ANNOTATION = ANNOTATION_PREFIX + "operator"
OPERATOR_CAPABILITIES_ANNOTATION = ANNOTATION_PREFIX + "operatorCapabilities"
PRERELEASE_ANNOTATION = ANNOTATION_PREFIX + "prerelease"
RECOMMENDATIONS_ANNOTATION = ANNOTATION_PREFIX + "recommendations"
SECURITY_UPDATES_ANNOTATION = ANNOTATION_PREFIX + "containsSecurityUpdates"
SIGN_KEY_ANNOTATION = ANNOTATION_PREFIX + "signKey"

INVALID_ANNOTATION_MSG = "invalid annotation"

VALID_OPERATOR_CAPABILITIES = [
    "basic install",
    "seamless upgrades",
    "full lifecycle",
    "deep insights",
    "auto pilot",
]

VALID_CHANGE_KINDS = [
    "added",
    "changed",
    "deprecated",
    "removed",
    "fixed",
    "security",
]

_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}

# Containers images references (registry/path:tag@digest)
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?"
_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|[-]+)[a-z0-9]+)*"
_NAME = rf"(?:{_DOMAIN}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"
IMAGE_REFERENCE_RE = re.compile(rf"^(?P<name>{_NAME})(?::{_TAG})?(?:@{_DIGEST})?$")
MAX_IMAGE_NAME_LENGTH = 255

_LINKS = TypeAdapter(list[Link])
_MAINTAINERS = TypeAdapter(list[Maintainer])
_IMAGES = TypeAdapter(list[ContainerImage])
_RECOMMENDATIONS = TypeAdapter(list[Recommendation])
_CHANGES = TypeAdapter(list[Change])


def parse_bool(value: str) -> bool:
    """Parse a boolean the way annotations expect (1/0, t/f, true/false...).

    Raises:
        ValueError: If the value is not a recognised boolean
    """
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def validate_containers_images(images: list[ContainerImage]) -> None:
    """Check the containers images provided are valid.

    Raises:
        AppError: With INVALID_METADATA code describing the first issue found
    """
    names: set[str] = set()
    for image in images:
        if image.name:
            if image.name in names:
                raise AppError(INVALID_METADATA, "container image name must be unique")
            names.add(image.name)
        if not image.image:
            raise AppError(INVALID_METADATA, "container image not provided")
        match = IMAGE_REFERENCE_RE.match(image.image)
        if not match or len(match.group("name")) > MAX_IMAGE_NAME_LENGTH:
            raise AppError(
                INVALID_METADATA,
                f"invalid container image reference: {image.image}",
            )


def parse_changes_annotation(annotation: str) -> list[Change]:
    """Parse the changes annotation.

    Changes can be provided as a list of strings (descriptions only) or as a
    list of objects with kind, description and links.

    Raises:
        AppError: With INVALID_ANNOTATION code if the changes are not valid
    """
    try:
        data = yaml.safe_load(annotation)
    except yaml.YAMLError as e:
        raise _annotation_error("invalid changes annotation", e) from e
    if data is None:
        return []
    if not isinstance(data, list):
        raise _annotation_error("invalid changes annotation")

    if all(isinstance(entry, str) for entry in data):
        return [Change(description=entry) for entry in data]

    try:
        changes = _CHANGES.validate_python(data)
    except ValidationError as e:
        raise _annotation_error("invalid changes annotation", e) from e
    for change in changes:
        _validate_change(change)
    return changes


def _validate_change(change: Change) -> None:
    if change.kind:
        change.kind = change.kind.strip().lower()
        if change.kind not in VALID_CHANGE_KINDS:
            raise _annotation_error("invalid change: invalid kind")
    if not change.description:
        raise _annotation_error("invalid change: description not provided")
    for link in change.links:
        if not link.name:
            raise _annotation_error("invalid change: link name not provided")
        if not link.url:
            raise _annotation_error("invalid change: link url not provided")


def enrich_package_from_chart(
    package: Package, chart: Chart, helm_bin: str = DEFAULT_HELM_BIN
) -> None:
    """Add to the package the information available in the chart archive.

    Containers images are found rendering the chart with the helm binary at
    ``helm_bin``.
    """
    md = chart.metadata
    package.description = md.description
    package.keywords = list(md.keywords)
    package.home_url = md.home
    package.app_version = md.app_version
    package.deprecated = md.deprecated
    package.values_schema = parse_schema(chart.schema)
    package.data = {}

    package.data["apiVersion"] = md.api_version

    # Containers images
    try:
        refs = extract_containers_images(chart, helm_bin)
    except AppError as e:
        logger.debug(f"Error extracting containers images from {md.name}: {e}")
        refs = []
    if refs:
        images = [ContainerImage(image=ref) for ref in refs]
        try:
            validate_containers_images(images)
        except AppError as e:
            logger.debug(f"Ignoring containers images of {md.name}: {e.message}")
        else:
            package.containers_images = images

    dependencies = [
        {"name": d.name, "version": d.version, "repository": d.repository}
        for d in md.dependencies
        if d is not None
    ]
    if dependencies:
        package.data["dependencies"] = dependencies

    package.data["kubeVersion"] = md.kube_version

    license_file = chart.get_file("LICENSE")
    if license_file is not None:
        package.license = license_detector.detect(license_file.data)

    links = [Link(name="source", url=url) for url in md.sources]
    if links:
        package.links = links

    maintainers = [
        Maintainer(name=m.name, email=m.email)
        for m in md.maintainers
        if m is not None and m.email
    ]
    if maintainers:
        package.maintainers = maintainers

    if "operator" in md.name.lower():
        package.is_operator = True

    readme = chart.get_file("README.md")
    if readme is not None:
        package.readme = readme.data.decode("utf-8", errors="replace")

    package.data["type"] = md.type


def enrich_package_from_annotations(package: Package, annotations: dict[str, str]) -> None:
    """Add to the package the information provided in the chart annotations.

    Every annotation is processed even when some of them are invalid; the
    problems found are reported together once all have been handled.

    Raises:
        AppError: With INVALID_ANNOTATION code listing every invalid annotation
    """
    errors: list[str] = []

    # Changes
    if CHANGES_ANNOTATION in annotations:
        try:
            package.changes = parse_changes_annotation(annotations[CHANGES_ANNOTATION])
        except AppError as e:
            errors.append(e.message)

    # CRDs
    if CRDS_ANNOTATION in annotations:
        crds = _load_list(annotations[CRDS_ANNOTATION])
        if crds is None:
            errors.append(_invalid("invalid crds value"))
        else:
            package.crds = crds

    # CRDs examples
    if CRDS_EXAMPLES_ANNOTATION in annotations:
        crds_examples = _load_list(annotations[CRDS_EXAMPLES_ANNOTATION])
        if crds_examples is None:
            errors.append(_invalid("invalid crdsExamples value"))
        else:
            package.crds_examples = crds_examples

    # Images
    if IMAGES_ANNOTATION in annotations:
        images = _load_models(_IMAGES, annotations[IMAGES_ANNOTATION])
        if images is None:
            errors.append(_invalid("invalid images value"))
        else:
            try:
                validate_containers_images(images)
            except AppError as e:
                errors.append(_invalid(e.message))
            else:
                package.containers_images = images

    # License
    if annotations.get(LICENSE_ANNOTATION):
        package.license = annotations[LICENSE_ANNOTATION]

    # Links
    if LINKS_ANNOTATION in annotations:
        links = _load_models(_LINKS, annotations[LINKS_ANNOTATION])
        if links is None:
            errors.append(_invalid("invalid links value"))
        else:
            for link in links:
                existing = next((pl for pl in package.links if pl.url == link.url), None)
                if existing is not None:
                    existing.name = link.name
                else:
                    package.links.append(link)

    # Maintainers
    if MAINTAINERS_ANNOTATION in annotations:
        maintainers = _load_models(_MAINTAINERS, annotations[MAINTAINERS_ANNOTATION])
        if maintainers is None:
            errors.append(_invalid("invalid maintainers value"))
        else:
            for maintainer in maintainers:
                existing = next(
                    (m for m in package.maintainers if m.email == maintainer.email), None
                )
                if existing is not None:
                    existing.name = maintainer.name
                else:
                    package.maintainers.append(maintainer)

    # Operator flag
    if OPERATOR_ANNOTATION in annotations:
        try:
            package.is_operator = parse_bool(annotations[OPERATOR_ANNOTATION])
        except ValueError:
            errors.append(_invalid("invalid operator value"))

    # Operator capabilities
    if OPERATOR_CAPABILITIES_ANNOTATION in annotations:
        capabilities = annotations[OPERATOR_CAPABILITIES_ANNOTATION].lower()
        if capabilities not in VALID_OPERATOR_CAPABILITIES:
            errors.append(_invalid("invalid operator capabilities value"))
        else:
            package.capabilities = capabilities

    # Prerelease
    if PRERELEASE_ANNOTATION in annotations:
        try:
            package.prerelease = parse_bool(annotations[PRERELEASE_ANNOTATION])
        except ValueError:
            errors.append(_invalid("invalid prerelease value"))

    # Recommendations
    if RECOMMENDATIONS_ANNOTATION in annotations:
        recommendations = _load_models(
            _RECOMMENDATIONS, annotations[RECOMMENDATIONS_ANNOTATION]
        )
        if recommendations is None:
            errors.append(_invalid("invalid recommendations value"))
        else:
            package.recommendations = recommendations

    # Security updates
    if SECURITY_UPDATES_ANNOTATION in annotations:
        try:
            package.contains_security_updates = parse_bool(
                annotations[SECURITY_UPDATES_ANNOTATION]
            )
        except ValueError:
            errors.append(_invalid("invalid containsSecurityUpdates value"))

    # Sign key
    if SIGN_KEY_ANNOTATION in annotations:
        sign_key = _load_sign_key(annotations[SIGN_KEY_ANNOTATION])
        if sign_key is None:
            errors.append(_invalid("invalid sign key value"))
        elif not sign_key.url:
            errors.append(_invalid("sign key url not provided"))
        else:
            package.sign_key = sign_key

    err = multi_error(INVALID_ANNOTATION, errors)
    if err is not None:
        raise err


def _invalid(detail: str) -> str:
    return f"{INVALID_ANNOTATION_MSG}: {detail}"


def _annotation_error(detail: str, cause: Optional[BaseException] = None) -> AppError:
    return AppError(INVALID_ANNOTATION, _invalid(detail), cause=cause)


def _load_yaml(value: str) -> tuple[bool, Any]:
    try:
        return True, yaml.safe_load(value)
    except yaml.YAMLError:
        return False, None


def _load_list(value: str) -> Optional[list[Any]]:
    """Parse a YAML list, returning None when the value is not one."""
    ok, data = _load_yaml(value)
    if not ok:
        return None
    if data is None:
        return []
    if not isinstance(data, list):
        return None
    return data


def _load_models(adapter: TypeAdapter, value: str) -> Optional[list[Any]]:
    data = _load_list(value)
    if data is None:
        return None
    try:
        return adapter.validate_python(data)
    except ValidationError:
        return None


def _load_sign_key(value: str) -> Optional[SignKey]:
    ok, data = _load_yaml(value)
    if not ok:
        return None
    if data is None:
        return SignKey()
    if not isinstance(data, dict):
        return None
    try:
        return SignKey.model_validate(data)
    except ValidationError:
        return None
