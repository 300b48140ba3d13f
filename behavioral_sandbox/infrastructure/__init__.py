# Infrastructure Layer
from .uow import (
    UnitOfWork,
    UoWProvider,
)
