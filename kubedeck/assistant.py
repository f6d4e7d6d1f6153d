import logging
from typing import Tuple

import kubedeck.backend
from kubedeck.models import AssistantQuery, ClientConfig, ResourceKind

# Convenience.
logit = logging.getLogger("kubedeck")


async def draft_manifest(
    cfg: ClientConfig, kind: ResourceKind, query: str
) -> Tuple[str, bool]:
    """Return a YAML manifest for `kind` drafted by the backend's assistant.

    This is best effort only. The caller must still validate the result like
    any other manual edit.

    """
    if not query.strip():
        logit.info("Assistant query cannot be empty")
        return "", True

    resp, err = await kubedeck.backend.draft(
        cfg, AssistantQuery(yamlType=kind.value, query=query)
    )
    if err:
        return "", True

    # The backend forwards the chat completion response verbatim.
    try:
        content = resp["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        logit.error("Assistant response has an unexpected structure")
        return "", True

    if not isinstance(content, str):
        return "", True
    return content, False
