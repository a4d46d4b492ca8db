from concierge.queries.common import *
from concierge.queries.proofs import *
from concierge.queries.chain import *
from concierge.queries.delegations import *
