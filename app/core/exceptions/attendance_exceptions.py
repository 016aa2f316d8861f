from fastapi import HTTPException, status


class InvalidToken(HTTPException):
    """Any check-in token failure, as reported to untrusted callers."""

    def __init__(self, detail='Invalid check-in token', status_code=status.HTTP_401_UNAUTHORIZED):
        super().__init__(status_code, detail, None)


class TokenMalformed(InvalidToken):
    def __init__(self, reason=None):
        msg = 'Malformed check-in token'
        if reason:
            msg = f'{msg}: {reason}'
        super().__init__(msg, status.HTTP_400_BAD_REQUEST)


class TokenSignatureMismatch(InvalidToken):
    def __init__(self):
        super().__init__('Invalid token signature')


class TokenExpired(InvalidToken):
    def __init__(self):
        super().__init__('Token expired')


class DuplicateCheckIn(HTTPException):
    def __init__(self):
        super().__init__(status.HTTP_409_CONFLICT, 'Member already checked in', None)


class NotLinkedToMember(HTTPException):
    def __init__(self):
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            'User is not linked to a member profile',
            None,
        )


class RecordNotFound(HTTPException):
    def __init__(self):
        super().__init__(status.HTTP_404_NOT_FOUND, 'Attendance record not found', None)


class MemberNotFound(HTTPException):
    def __init__(self):
        super().__init__(status.HTTP_404_NOT_FOUND, 'Member not found', None)


class EventInstanceNotFound(HTTPException):
    def __init__(self):
        super().__init__(status.HTTP_404_NOT_FOUND, 'Event instance not found', None)


class ConflictingAttendance(HTTPException):
    def __init__(self, detail=None):
        msg = detail or 'Member is already checked in to this event under another record'
        super().__init__(status.HTTP_409_CONFLICT, msg, None)
