"""
JQL generation for the missing-fields query.

The script is an opaque procedure executed by the analytics platform. Its
blank-ish rule and tracked field list are generated from the same Python
definitions the planner uses.
"""

import json
from string import Template
from typing import Iterable

from ..core.mappings import REQUIRED_FIELDS
from ..core.values import BLANKISH_TOKENS

_JQL_TEMPLATE = Template("""
function main() {
  var required = ${required};
  var tracked = ${tracked};
  var blankTokens = ${blank_tokens};
  var cap = ${cap};
  var taken = 0;
  var aidPropName = ${aid_prop};

  function isBlankish(v) {
    if (v === null || v === undefined) return true;
    if (typeof v === 'string') {
      return blankTokens.indexOf(v.trim().toLowerCase()) !== -1;
    }
    return false;
  }

  function missingOf(p) {
    return required.filter(function(k) {
      return !(k in p) || isBlankish(p[k]);
    });
  }

  return People()
    .filter(function(user) {
      if (cap > 0 && taken >= cap) return false;
      var p = user.properties || {};
      var needs = missingOf(p).length > 0;
      if (needs) taken++;
      return needs;
    })
    .map(function(user) {
      var p = user.properties || {};
      var props = {};
      tracked.forEach(function(k) {
        if (k in p) props[k] = p[k];
      });
      return {
        distinct_id: user.distinct_id,
        aid_prop: p[aidPropName],
        missing: missingOf(p),
        props: props
      };
    });
}
""")


def normalize_cap(max_results: int | None) -> int:
    """Clamp the result cap; 0 means unlimited."""
    return max(0, int(max_results or 0))


def build_missing_fields_query(
    required_fields: Iterable[str] = REQUIRED_FIELDS,
    max_results: int | None = 0,
    join_property: str = "Store Id (aid)",
    tracked_fields: Iterable[str] = REQUIRED_FIELDS,
) -> str:
    """
    Build the JQL script selecting profiles with missing required fields.

    The script selects a profile when at least one required field is absent
    or blank-ish. Once the cap is reached no new profiles are selected;
    profiles already selected are kept. Each selected profile is mapped to
    its distinct_id, the join property value, the missing field names and a
    snapshot of the tracked fields it has.

    Args:
        required_fields: Fields that must be present and non-blank
        max_results: Stop selecting after this many profiles (0 = no cap)
        join_property: Profile property holding the join key
        tracked_fields: Fields whose current values are returned

    Returns:
        Self-contained JQL script text
    """
    return _JQL_TEMPLATE.substitute(
        required=json.dumps(list(required_fields)),
        tracked=json.dumps(list(tracked_fields)),
        blank_tokens=json.dumps(list(BLANKISH_TOKENS)),
        cap=normalize_cap(max_results),
        aid_prop=json.dumps(join_property),
    ).strip()
