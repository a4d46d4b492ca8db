from typing import Literal, Any

# type aliases for clarity
EthereumAddress = str
BigNumber = str
HexString = str
Leaf = HexString
RecipientId = str
Wei = int
ProofService_Response = dict[Literal["data"], Any]
