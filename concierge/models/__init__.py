"""
Types here are instantiated as subclasses of pydantic's `BaseModel`.
This means we get runtime deserialization and validation for free just by using type declarations
and a couple of pydantic helpers.

Use these in your code as python objects, then serialize to json by converting to a dict with `.model_dump()`
"""

from concierge.models.types import *
from concierge.models.Claim import *
from concierge.models.Config import *
from concierge.models.Outcome import *
from concierge.models.Snapshot import *
from concierge.models.Report import *
from concierge.models.Ledger import *
from concierge.models.SnapshotStore import *
from concierge.models.Writer import *
