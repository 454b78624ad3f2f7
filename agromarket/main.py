import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, settings as default_settings
from .errors import InvalidCredentialsError, MarketError, UnauthenticatedError
from .logging_config import setup_logging
from .schemas import (
    Contract,
    CreateContractRequest,
    CreateProductRequest,
    LoginRequest,
    Message,
    Product,
    ProductStatus,
    RegisterRequest,
    SendMessageRequest,
    UpdateContractStatusRequest,
    User,
    UserResponse,
    UserRole,
)
from .security import (
    end_session,
    get_current_user,
    get_settings,
    get_storage,
    hash_password,
    require_role,
    start_session,
    verify_password,
)
from .storage import IStorage, MemStorage

logger = logging.getLogger(__name__)

router = APIRouter()

require_listing_farmer = require_role(UserRole.FARMER, "Only farmers can create products")
require_contract_farmer = require_role(UserRole.FARMER, "Only farmers can update contracts")
require_buyer = require_role(UserRole.BUYER, "Only buyers can create contracts")

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@router.post("/api/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    storage: IStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """Register a new user and log them in"""

    data = request.model_copy(update={"password": hash_password(request.password)})
    user = storage.create_user(data)
    start_session(response, storage, settings, user)
    return user.public()

@router.post("/api/login", response_model=UserResponse)
async def login(
    request: LoginRequest,
    response: Response,
    storage: IStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """Login user"""

    user = storage.get_user_by_username(request.username)
    if not user or not verify_password(request.password, user.password):
        raise InvalidCredentialsError()

    start_session(response, storage, settings, user)
    return user.public()

@router.post("/api/logout")
async def logout(
    http_request: Request,
    response: Response,
    storage: IStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """End the caller's session, if there is one"""

    end_session(http_request, response, storage, settings)
    return {"success": True}

@router.get("/api/user", response_model=UserResponse)
async def current_user(user: User = Depends(get_current_user)):
    return user.public()

# ============================================================================
# USER ENDPOINTS
# ============================================================================

@router.get("/api/users", response_model=List[UserResponse])
async def list_users(
    user: User = Depends(get_current_user),
    storage: IStorage = Depends(get_storage),
):
    """All registered users, the caller included"""

    return [u.public() for u in storage.list_users()]

# ============================================================================
# PRODUCT ENDPOINTS
# ============================================================================

@router.get("/api/products", response_model=List[Product])
async def list_products(storage: IStorage = Depends(get_storage)):
    """Public listing of every product, whatever its status"""

    return storage.list_products()

@router.post("/api/products", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: CreateProductRequest,
    user: User = Depends(require_listing_farmer),
    storage: IStorage = Depends(get_storage),
):
    """Farmer lists a new product"""

    return storage.create_product(request, farmer_id=user.id, status=ProductStatus.AVAILABLE)

# ============================================================================
# CONTRACT ENDPOINTS
# ============================================================================

@router.post("/api/contracts", response_model=Contract, status_code=status.HTTP_201_CREATED)
async def create_contract(
    request: CreateContractRequest,
    user: User = Depends(require_buyer),
    storage: IStorage = Depends(get_storage),
):
    """Buyer proposes a contract on an available product.

    The product is taken off the market in the same store operation.
    """

    return storage.open_contract(request, buyer_id=user.id)

@router.get("/api/contracts", response_model=List[Contract])
async def list_my_contracts(
    user: User = Depends(get_current_user),
    storage: IStorage = Depends(get_storage),
):
    """Contracts where the caller is the buyer or the farmer"""

    return storage.list_contracts_by_user(user.id)

@router.patch("/api/contracts/{contract_id}", response_model=Contract)
async def update_contract_status(
    contract_id: int,
    request: Optional[UpdateContractStatusRequest] = None,
    user: User = Depends(require_contract_farmer),
    storage: IStorage = Depends(get_storage),
):
    """Farmer accepts or rejects a pending contract"""

    target = request.status if request is not None else None
    return storage.transition_contract(contract_id, user.id, target)

# ============================================================================
# MESSAGE ENDPOINTS
# ============================================================================

@router.post("/api/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: SendMessageRequest,
    user: User = Depends(get_current_user),
    storage: IStorage = Depends(get_storage),
):
    return storage.create_message(request, sender_id=user.id)

@router.get("/api/messages/{user_id}", response_model=List[Message])
async def get_conversation(
    user_id: int,
    user: User = Depends(get_current_user),
    storage: IStorage = Depends(get_storage),
):
    """Messages exchanged between the caller and ``user_id``, oldest first"""

    return storage.list_messages_between(user.id, user_id)

# ============================================================================
# ROOT ENDPOINTS
# ============================================================================

@router.get("/")
async def root(settings: Settings = Depends(get_settings)):
    return {
        "message": settings.project_name,
        "version": settings.api_version,
        "status": "running",
        "docs": "/docs"
    }

@router.get("/api/health")
async def health_check(storage: IStorage = Depends(get_storage)):
    return {"status": "healthy", **storage.stats()}

# ============================================================================
# ERROR HANDLERS
# ============================================================================

async def market_error_handler(request: Request, exc: MarketError):
    logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.detail)
    if isinstance(exc, UnauthenticatedError):
        return Response(status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger.warning("%s %s -> 400 invalid payload", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": errors})

# ============================================================================
# SEED DATA
# ============================================================================

def seed_data(storage: IStorage):
    """Seed demo farmers, buyers and products"""

    def register(username, role, full_name, phone):
        return storage.create_user(RegisterRequest(
            username=username,
            password=hash_password("password123"),
            role=role,
            full_name=full_name,
            email=f"{username}@agromarket.com",
            phone_number=phone,
        ))

    farmer1 = register("farmer1", UserRole.FARMER, "Rajesh Kumar", "+919876543210")
    farmer2 = register("farmer2", UserRole.FARMER, "Suresh Patel", "+919876543211")
    register("buyer1", UserRole.BUYER, "Arun Traders Pvt Ltd", "+919876543212")
    register("buyer2", UserRole.BUYER, "Vikram Trading Co", None)

    products = [
        (farmer1, "Soybean", "Yellow soybean, 2024 harvest", "1000", "kg", "45.00"),
        (farmer1, "Mustard", "Black mustard seed", "500", "kg", "55.50"),
        (farmer2, "Groundnut", "Bold groundnut kernels", "800", "kg", "60.00"),
    ]
    for farmer, name, description, quantity, unit, price in products:
        storage.create_product(
            CreateProductRequest(name=name, description=description, quantity=quantity, unit=unit, price=price),
            farmer_id=farmer.id,
            status=ProductStatus.AVAILABLE,
        )

    logger.info("Seeded demo data: %s", storage.stats())

# ============================================================================
# APPLICATION
# ============================================================================

def create_app(storage: Optional[IStorage] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around ``storage``.

    A fresh ``MemStorage`` is created when no store is passed.  The store
    and settings live on ``app.state`` and reach the handlers through
    dependencies.
    """
    settings = settings or default_settings
    setup_logging(settings.log_level)

    if storage is None:
        storage = MemStorage(session_ttl_seconds=settings.session_ttl_seconds)
        if settings.seed_demo_data:
            seed_data(storage)

    app = FastAPI(title=settings.project_name, version=settings.api_version)
    app.state.storage = storage
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MarketError, market_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)
    return app


app = create_app()

# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
