"""
YAML loading utilities for gate configuration files.
"""

import re
from typing import Any, Dict

import yaml

from gates.core.exceptions import ConfigParseError

_INT_TAG = "tag:yaml.org,2002:int"


class ConfigLoader(yaml.SafeLoader):
    """
    SafeLoader without YAML 1.1 sexagesimal integers.

    Plain ``12:10`` would otherwise load as the integer 730, which makes
    deploy slot times unusable.
    """


ConfigLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _INT_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ConfigLoader.add_implicit_resolver(
    _INT_TAG,
    re.compile(
        r"""^(?:[-+]?0b[0-1_]+
            |[-+]?0[0-7_]+
            |[-+]?(?:0|[1-9][0-9_]*)
            |[-+]?0x[0-9a-fA-F_]+)$""",
        re.X,
    ),
    list("-+0123456789"),
)


def load_yaml(content: str) -> Dict[str, Any]:
    """
    Parse the text of a gate configuration file.

    Args:
        content: Raw YAML text.

    Returns:
        The top level mapping. An empty document yields an empty dict.

    Raises:
        ConfigParseError: The text is not YAML or its root is not a mapping.
    """
    try:
        document = yaml.load(content, Loader=ConfigLoader)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigParseError("Configuration root must be a mapping")
    return document
