"""
Entity store for users, products, contracts, messages and sessions.

``IStorage`` is the operation contract the route layer depends on.
``MemStorage`` keeps every collection in a dict keyed by an integer id,
with one id counter per collection starting at 1.  A table-backed store
can replace it as long as it honours the same contract, in particular
the atomicity of ``open_contract`` and ``transition_contract``.

Records handed out are copies; callers change state only through the
store's operations.
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import BadRequestError, DuplicateUsernameError, ForbiddenError, InvalidStateError, NotFoundError
from .schemas import (
    CONTRACT_DECISIONS,
    Contract,
    ContractStatus,
    CreateContractRequest,
    CreateProductRequest,
    Message,
    Product,
    ProductStatus,
    RegisterRequest,
    SendMessageRequest,
    User,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IStorage(ABC):
    """Operations the route handlers need from a store."""

    # Users
    @abstractmethod
    def list_users(self) -> List[User]: ...

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, data: RegisterRequest) -> User: ...

    # Products
    @abstractmethod
    def list_products(self) -> List[Product]: ...

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]: ...

    @abstractmethod
    def create_product(self, data: CreateProductRequest, farmer_id: int, status: ProductStatus) -> Product: ...

    @abstractmethod
    def update_product(self, product_id: int, status: ProductStatus) -> Product: ...

    # Contracts
    @abstractmethod
    def get_contract(self, contract_id: int) -> Optional[Contract]: ...

    @abstractmethod
    def create_contract(
        self, data: CreateContractRequest, buyer_id: int, farmer_id: int, status: ContractStatus
    ) -> Contract: ...

    @abstractmethod
    def update_contract(self, contract_id: int, status: ContractStatus) -> Contract: ...

    @abstractmethod
    def list_contracts_by_user(self, user_id: int) -> List[Contract]: ...

    @abstractmethod
    def open_contract(self, data: CreateContractRequest, buyer_id: int) -> Contract: ...

    @abstractmethod
    def transition_contract(self, contract_id: int, farmer_id: int, status: Any) -> Contract: ...

    # Messages
    @abstractmethod
    def create_message(self, data: SendMessageRequest, sender_id: int) -> Message: ...

    @abstractmethod
    def list_messages_between(self, user_a: int, user_b: int) -> List[Message]: ...

    # Sessions
    @abstractmethod
    def create_session(self, user_id: int) -> str: ...

    @abstractmethod
    def get_session_user_id(self, token: str) -> Optional[int]: ...

    @abstractmethod
    def delete_session(self, token: str) -> None: ...

    @abstractmethod
    def stats(self) -> Dict[str, int]: ...


class MemStorage(IStorage):
    """In-memory store.  One lock serializes every read-modify-write."""

    def __init__(self, session_ttl_seconds: int = 24 * 60 * 60, clock: Callable[[], float] = time.time):
        self.users: Dict[int, User] = {}
        self.products: Dict[int, Product] = {}
        self.contracts: Dict[int, Contract] = {}
        self.messages: Dict[int, Message] = {}
        # token -> (user_id, expires_at)
        self.sessions: Dict[str, Tuple[int, float]] = {}
        self.current_id = {"users": 1, "products": 1, "contracts": 1, "messages": 1}
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()

    def _next_id(self, collection: str) -> int:
        new_id = self.current_id[collection]
        self.current_id[collection] += 1
        return new_id

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self) -> List[User]:
        with self._lock:
            return [u.model_copy() for u in self.users.values()]

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self.users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            for user in self.users.values():
                if user.username == username:
                    return user.model_copy()
            return None

    def create_user(self, data: RegisterRequest) -> User:
        """Store a user.  ``data.password`` must already be hashed."""
        with self._lock:
            if any(u.username == data.username for u in self.users.values()):
                raise DuplicateUsernameError()
            user = User(id=self._next_id("users"), **data.model_dump())
            self.users[user.id] = user
            logger.info("Registered %s %s (id=%d)", user.role.value, user.username, user.id)
            return user.model_copy()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def list_products(self) -> List[Product]:
        with self._lock:
            return [p.model_copy() for p in self.products.values()]

    def get_product(self, product_id: int) -> Optional[Product]:
        with self._lock:
            product = self.products.get(product_id)
            return product.model_copy() if product else None

    def create_product(self, data: CreateProductRequest, farmer_id: int, status: ProductStatus) -> Product:
        with self._lock:
            product = Product(
                id=self._next_id("products"),
                farmer_id=farmer_id,
                status=status,
                created_at=utcnow(),
                **data.model_dump(),
            )
            self.products[product.id] = product
            logger.info("Farmer %d listed product %d (%s)", farmer_id, product.id, product.name)
            return product.model_copy()

    def update_product(self, product_id: int, status: ProductStatus) -> Product:
        with self._lock:
            product = self.products.get(product_id)
            if product is None:
                raise NotFoundError("Product not found")
            updated = product.model_copy(update={"status": ProductStatus(status)})
            self.products[product_id] = updated
            return updated.model_copy()

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def get_contract(self, contract_id: int) -> Optional[Contract]:
        with self._lock:
            contract = self.contracts.get(contract_id)
            return contract.model_copy() if contract else None

    def create_contract(
        self, data: CreateContractRequest, buyer_id: int, farmer_id: int, status: ContractStatus
    ) -> Contract:
        with self._lock:
            contract = Contract(
                id=self._next_id("contracts"),
                buyer_id=buyer_id,
                farmer_id=farmer_id,
                status=status,
                created_at=utcnow(),
                **data.model_dump(),
            )
            self.contracts[contract.id] = contract
            return contract.model_copy()

    def update_contract(self, contract_id: int, status: ContractStatus) -> Contract:
        with self._lock:
            contract = self.contracts.get(contract_id)
            if contract is None:
                raise NotFoundError("Contract not found")
            updated = contract.model_copy(update={"status": ContractStatus(status)})
            self.contracts[contract_id] = updated
            return updated.model_copy()

    def list_contracts_by_user(self, user_id: int) -> List[Contract]:
        with self._lock:
            return [
                c.model_copy() for c in self.contracts.values()
                if c.buyer_id == user_id or c.farmer_id == user_id
            ]

    def open_contract(self, data: CreateContractRequest, buyer_id: int) -> Contract:
        """Create a pending contract and take the product off the market.

        The availability check, the contract insert and the product flip
        happen under one lock acquisition.  If the flip fails the contract
        is removed again before the error propagates.
        """
        with self._lock:
            product = self.products.get(data.product_id)
            if product is None:
                raise NotFoundError("Product not found")
            if product.status != ProductStatus.AVAILABLE:
                raise InvalidStateError("This product is not available for contracts")

            contract = self.create_contract(data, buyer_id, product.farmer_id, ContractStatus.PENDING)
            try:
                self.update_product(product.id, ProductStatus.PENDING)
            except Exception:
                del self.contracts[contract.id]
                logger.exception("Rolled back contract %d for product %d", contract.id, product.id)
                raise

            logger.info(
                "Buyer %d opened contract %d on product %d (farmer %d)",
                buyer_id, contract.id, product.id, product.farmer_id,
            )
            return contract

    def transition_contract(self, contract_id: int, farmer_id: int, status: Any) -> Contract:
        """Move a pending contract to ``status`` on behalf of its farmer.

        Checks run in order: existence, ownership, current state, then the
        target, which must be ``accepted`` or ``rejected``.
        """
        with self._lock:
            contract = self.contracts.get(contract_id)
            if contract is None:
                raise NotFoundError("Contract not found")
            if contract.farmer_id != farmer_id:
                raise ForbiddenError("You can only update your own contracts")
            if contract.status != ContractStatus.PENDING:
                raise InvalidStateError("Only pending contracts can be updated")
            if not isinstance(status, str) or status not in CONTRACT_DECISIONS:
                raise BadRequestError("Invalid status")

            updated = self.update_contract(contract_id, status)
            logger.info("Farmer %d set contract %d to %s", farmer_id, contract_id, updated.status.value)
            return updated

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def create_message(self, data: SendMessageRequest, sender_id: int) -> Message:
        with self._lock:
            message = Message(
                id=self._next_id("messages"),
                sender_id=sender_id,
                created_at=utcnow(),
                **data.model_dump(),
            )
            self.messages[message.id] = message
            return message.model_copy()

    def list_messages_between(self, user_a: int, user_b: int) -> List[Message]:
        with self._lock:
            return [
                m.model_copy() for m in self.messages.values()
                if (m.sender_id == user_a and m.receiver_id == user_b)
                or (m.sender_id == user_b and m.receiver_id == user_a)
            ]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: int) -> str:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._purge_expired_sessions()
            self.sessions[token] = (user_id, self._clock() + self.session_ttl_seconds)
        return token

    def get_session_user_id(self, token: str) -> Optional[int]:
        with self._lock:
            entry = self.sessions.get(token)
            if entry is None:
                return None
            user_id, expires_at = entry
            if expires_at <= self._clock():
                del self.sessions[token]
                return None
            return user_id

    def delete_session(self, token: str) -> None:
        with self._lock:
            self.sessions.pop(token, None)

    def _purge_expired_sessions(self) -> None:
        now = self._clock()
        for token in [t for t, (_, expires_at) in self.sessions.items() if expires_at <= now]:
            del self.sessions[token]

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "users": len(self.users),
                "products": len(self.products),
                "contracts": len(self.contracts),
                "messages": len(self.messages),
                "sessions": len(self.sessions),
            }
