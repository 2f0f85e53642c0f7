from sqlalchemy import or_
from sqlalchemy.orm import Session
from fastapi import status
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import hashlib
import logging

from ..models.user import User, RefreshToken
from ..core.exceptions import NotFound, Unauthenticated, ValidationError
from ..core.security import (
    verify_password, get_password_hash, create_token_pair,
    verify_token, UserRole
)
from ..schemas.auth import (
    UserLogin, UserRegister, AdminUserCreate, TokenResponse, UserResponse
)
from .availability_service import AvailabilityStore

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new patient or doctor account."""
        if user_data.role == UserRole.ADMIN:
            raise ValidationError("Administrator accounts can only be created by an administrator")
        return self._create_user(user_data)

    def create_user(self, user_data: AdminUserCreate) -> User:
        """Create an account of any role (admin only)."""
        return self._create_user(user_data)

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email.lower()
        ).first()

        if not user or not verify_password(login_data.password, user.password_hash):
            logger.warning(f"Failed login for {login_data.email}")
            raise Unauthenticated("Invalid email or password")

        if not user.is_active:
            raise Unauthenticated("Account is deactivated")

        user.last_login = datetime.utcnow()
        tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, tokens.refresh_token)
        self.db.commit()
        self.db.refresh(user)

        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=UserResponse.model_validate(user)
        )

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Refresh access token using refresh token."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != "refresh":
            raise Unauthenticated("Invalid refresh token")

        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash,
            RefreshToken.is_revoked.is_(False),
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise Unauthenticated("Invalid or expired refresh token")

        user = self.db.get(User, token_payload.sub)
        if not user or not user.is_active:
            raise Unauthenticated("User not found or inactive")

        new_tokens = create_token_pair(user.id, user.email, user.role)
        stored_token.is_revoked = True
        self._store_refresh_token(user.id, new_tokens.refresh_token)
        self.db.commit()

        return TokenResponse(
            access_token=new_tokens.access_token,
            refresh_token=new_tokens.refresh_token,
            token_type=new_tokens.token_type,
            expires_in=new_tokens.expires_in,
            user=UserResponse.model_validate(user)
        )

    def logout_user(self, refresh_token: str) -> bool:
        """Revoke a refresh token. Returns False if it was unknown."""
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash
        ).first()

        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.db.commit()
        return True

    # Account administration

    def list_users(
        self,
        role: Optional[UserRole] = None,
        search: Optional[str] = None,
        specialization: Optional[str] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> Tuple[int, List[User]]:
        """Filtered, paginated accounts for the admin screens."""
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
        if specialization and specialization.strip():
            query = query.filter(User.specialization.ilike(specialization.strip()))

        total = query.count()
        items = query.order_by(User.id.asc()).offset(skip).limit(limit).all()
        return total, items

    def list_specializations(self) -> List[str]:
        rows = self.db.query(User.specialization).filter(
            User.role == UserRole.DOCTOR,
            User.specialization.isnot(None),
            User.specialization != "",
        ).distinct().order_by(User.specialization.asc()).all()
        return [specialization for (specialization,) in rows]

    def set_user_active(self, user_id: int, is_active: bool, admin: User) -> User:
        user = self._get_user(user_id)
        if user.id == admin.id and not is_active:
            raise ValidationError("Administrators cannot deactivate their own account")

        user.is_active = is_active
        if not is_active:
            self._revoke_all_tokens(user.id)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user_id} {'activated' if is_active else 'deactivated'} by admin {admin.id}")
        return user

    def delete_user(self, user_id: int, admin: User) -> None:
        """Remove an account. Appointments keep their weak reference."""
        user = self._get_user(user_id)
        if user.id == admin.id:
            raise ValidationError("Administrators cannot delete their own account")

        if user.role == UserRole.DOCTOR:
            AvailabilityStore(self.db).clear_doctor(user.id)
        self._revoke_all_tokens(user.id)
        self.db.delete(user)
        self.db.commit()
        logger.info(f"User {user_id} deleted by admin {admin.id}")

    def ensure_admin(self, email: str, password: str) -> User:
        """Create the bootstrap administrator if it does not exist yet."""
        user = self.db.query(User).filter(User.email == email.lower()).first()
        if user:
            return user

        user = User(
            email=email.lower(),
            password_hash=get_password_hash(password),
            role=UserRole.ADMIN,
            full_name="Administrator",
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Bootstrap administrator {user.email} created")
        return user

    def _create_user(self, user_data: UserRegister) -> User:
        email = user_data.email.lower()
        existing_user = self.db.query(User).filter(User.email == email).first()
        if existing_user:
            raise ValidationError("Email already registered", status_code=status.HTTP_400_BAD_REQUEST)

        new_user = User(
            email=email,
            password_hash=get_password_hash(user_data.password),
            role=user_data.role,
            full_name=user_data.full_name,
            specialization=user_data.specialization if user_data.role == UserRole.DOCTOR else None,
            is_active=True,
        )

        self.db.add(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        logger.info(f"Registered {new_user.role.value} account {new_user.email}")
        return new_user

    def _get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def _revoke_all_tokens(self, user_id: int):
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        """Store refresh token in database, revoking older ones."""
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()

        token_payload = verify_token(refresh_token)
        expires_at = datetime.utcfromtimestamp(token_payload.exp) if token_payload and token_payload.exp else datetime.utcnow() + timedelta(days=7)

        self._revoke_all_tokens(user_id)
        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at
        ))
