# app/deps_admin.py
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.security import decode_access_token

# Authorization: Bearer <token> (emesso dal servizio di autenticazione)
admin_bearer_scheme = HTTPBearer()


@dataclass(frozen=True)
class AdminPrincipal:
    id: int


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(admin_bearer_scheme),
) -> AdminPrincipal:
    """
    Verifica che il 'sub' del token sia "admin:<id>".
    Token non valido/scaduto -> 401, token non admin -> 403.
    """
    subject = decode_access_token(credentials.credentials)

    if subject is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired admin token.",
        )

    if not subject.startswith("admin:"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: not an admin token.",
        )

    admin_id = subject.split(":", 1)[1]
    if not admin_id.isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Corrupted admin token.",
        )

    return AdminPrincipal(id=int(admin_id))
