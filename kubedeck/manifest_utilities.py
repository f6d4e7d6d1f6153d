from typing import Tuple

import yaml


def validate(doc: str) -> Tuple[dict, str, bool]:
    """Parse the YAML `doc` and return it as a dict.

    Returns `(manifest, reason, err)`. The `reason` explains why the document
    was rejected and is empty on success.

    """
    try:
        parsed = yaml.safe_load(doc)
    except yaml.YAMLError as err:
        # Multiple documents in the same text also end up here.
        return {}, str(err), True
    except (ValueError, TypeError, OverflowError, RecursionError) as err:
        # The constructors raise these for syntactically valid but impossible
        # values, eg `2024-02-30`, and for absurdly deep nesting.
        return {}, f"cannot load document: {err!r}", True

    if parsed is None:
        return {}, "document is empty", True

    # A manifest must be a mapping, eg `apiVersion: v1\nkind: Pod ...`.
    if not isinstance(parsed, dict):
        return {}, f"expected a mapping but got {type(parsed).__name__}", True

    return parsed, "", False
