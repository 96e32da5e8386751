from arkadex.wallet.batch import (
    BatchError,
    BatchHandler,
    BatchSettlementCoordinator,
    ConnectorsExhaustedError,
    MissingDataError,
    Phase,
    PhaseError,
)
from arkadex.wallet.join import BatchFailedError, BatchJoiner, join_batch
from arkadex.wallet.session import ArkadeCoin, Identity, SignedIntent, SignerSession
