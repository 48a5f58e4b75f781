from fastapi import HTTPException, status


class GroupServiceError(HTTPException):
    code = "internal_error"

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(GroupServiceError):
    code = "not_found"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class GroupNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__(detail="Group not found")


class ParticipantNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__(detail="User is not an active member of this group")


class MessageNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__(detail="Message not found")


class InviteNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__(detail="Invite link not found")


class PermissionDeniedError(GroupServiceError):
    code = "permission_denied"

    def __init__(self, capability: str | None = None):
        detail = "You don't have permission to perform this action"
        if capability:
            detail = f"{detail} ({capability})"
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class AlreadyMemberError(GroupServiceError):
    code = "already_member"

    def __init__(self):
        super().__init__(detail="User is already a member of this group", status_code=status.HTTP_409_CONFLICT)


class CapacityExceededError(GroupServiceError):
    code = "capacity_exceeded"

    def __init__(self, max_participants: int):
        super().__init__(
            detail=f"This group is full (maximum {max_participants} participants)",
            status_code=status.HTTP_409_CONFLICT,
        )


class LastAdminViolationError(GroupServiceError):
    code = "last_admin_violation"

    def __init__(self):
        super().__init__(
            detail="A group must keep at least one admin",
            status_code=status.HTTP_409_CONFLICT,
        )


class InviteInvalidError(GroupServiceError):
    code = "invite_invalid"

    def __init__(self):
        super().__init__(detail="Invite code is not valid", status_code=status.HTTP_400_BAD_REQUEST)


class InviteExpiredError(GroupServiceError):
    code = "invite_expired"

    def __init__(self):
        super().__init__(detail="Invite link has expired or reached its usage limit", status_code=status.HTTP_410_GONE)


class ValidationError(GroupServiceError):
    code = "validation_error"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=422)


class RepositoryError(GroupServiceError):
    code = "repository_error"

    def __init__(self, detail: str = "Storage backend unavailable"):
        super().__init__(detail=detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class DuplicateParticipantError(RepositoryError):
    def __init__(self):
        super().__init__(detail="Duplicate participant row")
