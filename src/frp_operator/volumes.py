"""Pure functions over the frpc pod template.

Volumes and mounts are plain dictionaries in their JSON form (camelCase keys),
as read back from the Deployment. Every function returns new values and never
changes its arguments; entries are matched by name only, so applying the same
change twice leaves the lists as they were after the first time.
"""

from dataclasses import dataclass, field, replace

from frp_operator.naming import (
    CERT_VOLUME_PREFIX,
    SecretRef,
    cert_dir,
    cert_volume_name,
    config_hash_annotation,
    config_map_name,
    config_volume_name,
    fragment_filename,
    staged_secret_name,
)


@dataclass(frozen=True)
class PodTemplate:
    """The parts of the frpc pod template owned by the operator."""

    volumes: list[dict] = field(default_factory=list)
    mounts: list[dict] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)


def config_volume(artifact: str) -> dict:
    return {"name": config_volume_name(artifact), "configMap": {"name": config_map_name(artifact)}}


def config_mount(artifact: str, config_root: str) -> dict:
    filename = fragment_filename(artifact)
    return {
        "name": config_volume_name(artifact),
        "mountPath": f"{config_root}/{filename}",
        "subPath": filename,
        "readOnly": True,
    }


def cert_volume(ref: SecretRef) -> dict:
    return {"name": cert_volume_name(ref), "secret": {"secretName": staged_secret_name(ref)}}


def cert_mount(ref: SecretRef, cert_root: str) -> dict:
    return {"name": cert_volume_name(ref), "mountPath": cert_dir(cert_root, ref), "readOnly": True}


def add_if_absent(items: list[dict], item: dict) -> list[dict]:
    """Append ``item`` unless an entry with the same name is already there."""
    if any(existing.get("name") == item["name"] for existing in items):
        return list(items)
    return [*items, item]


def remove_by_name(items: list[dict], names: set[str]) -> list[dict]:
    """Drop every entry whose name is in ``names``."""
    return [item for item in items if item.get("name") not in names]


def with_artifact(
    template: PodTemplate,
    artifact: str,
    config_hash: str,
    secrets: set[SecretRef],
    config_root: str,
    cert_root: str,
) -> PodTemplate:
    """Mount one proxy fragment and the certificates it references.

    The fragment's content hash is recorded as a template annotation so that
    the frpc pods roll whenever the fragment changes.
    """
    volumes = add_if_absent(template.volumes, config_volume(artifact))
    mounts = add_if_absent(template.mounts, config_mount(artifact, config_root))
    for ref in sorted(secrets):
        volumes = add_if_absent(volumes, cert_volume(ref))
        mounts = add_if_absent(mounts, cert_mount(ref, cert_root))
    annotations = {**template.annotations, config_hash_annotation(artifact): config_hash}
    return replace(template, volumes=volumes, mounts=mounts, annotations=annotations)


def without_artifact(template: PodTemplate, artifact: str) -> PodTemplate:
    """Unmount one proxy fragment and forget its hash annotation."""
    names = {config_volume_name(artifact)}
    annotations = {
        key: value for key, value in template.annotations.items() if key != config_hash_annotation(artifact)
    }
    return replace(
        template,
        volumes=remove_by_name(template.volumes, names),
        mounts=remove_by_name(template.mounts, names),
        annotations=annotations,
    )


def prune_certificates(template: PodTemplate, keep: set[SecretRef]) -> PodTemplate:
    """Drop the certificate volumes and mounts of Secrets no fragment references."""
    wanted = {cert_volume_name(ref) for ref in keep}
    stale = {
        item["name"]
        for item in [*template.volumes, *template.mounts]
        if item.get("name", "").startswith(CERT_VOLUME_PREFIX) and item["name"] not in wanted
    }
    if not stale:
        return template
    return replace(
        template,
        volumes=remove_by_name(template.volumes, stale),
        mounts=remove_by_name(template.mounts, stale),
    )
