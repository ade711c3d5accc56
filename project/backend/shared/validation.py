"""
Validation utilities.

Shared validation utilities for common input validation tasks.
"""

from typing import Optional

from shared.errors import PreconditionError, ValidationError

# Placeholder used by the wizard before the server-side record exists
PLACEHOLDER_PROJECT_ID = "new"


def validate_project_id(project_id: Optional[str]) -> str:
    """
    Validate a project identifier before any remote call.

    Args:
        project_id: Project ID to validate

    Returns:
        The project ID

    Raises:
        PreconditionError: If the ID is missing or still the placeholder
    """
    if not project_id or project_id == PLACEHOLDER_PROJECT_ID:
        raise PreconditionError(
            "Cannot save - no video ID available.",
            code="MISSING_PROJECT_ID"
        )
    return project_id


def validate_reference_image(
    content: bytes,
    filename: Optional[str] = None,
    max_size_mb: int = 10
) -> None:
    """
    Validate a reference image upload.

    Args:
        content: Raw image bytes
        filename: Original file name (optional)
        max_size_mb: Maximum file size in MB (default: 10)

    Raises:
        ValidationError: If image is invalid
    """
    if content is None:
        raise ValidationError("File is required")

    if len(content) == 0:
        raise ValidationError("File is empty")

    validate_file_size(len(content), max_size_mb * 1024 * 1024)

    header = content[:12]

    # Check for common image file signatures
    valid_signatures = [
        b"\x89PNG\r\n\x1a\n",  # PNG
        b"\xff\xd8\xff",  # JPEG
        b"GIF87a",  # GIF
        b"GIF89a",  # GIF
    ]

    is_valid_image = any(header.startswith(sig) for sig in valid_signatures)

    # WEBP is RIFF....WEBP
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        is_valid_image = True

    if not is_valid_image:
        name = f" ({filename})" if filename else ""
        raise ValidationError(
            f"Invalid image file format{name}. Supported formats: PNG, JPEG, WEBP, GIF"
        )


def validate_reference_count(current_count: int, max_images: int) -> None:
    """
    Validate that another reference image may be added.

    Args:
        current_count: Number of reference images already attached
        max_images: Maximum number allowed

    Raises:
        ValidationError: If the limit is reached
    """
    if current_count >= max_images:
        raise ValidationError(
            f"At most {max_images} reference images are allowed"
        )


def validate_file_size(
    file_size_bytes: int,
    max_size_bytes: int
) -> None:
    """
    Validate file size.

    Args:
        file_size_bytes: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Raises:
        ValidationError: If file size exceeds maximum
    """
    if file_size_bytes < 0:
        raise ValidationError("File size cannot be negative")

    if file_size_bytes > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        file_size_mb = file_size_bytes / (1024 * 1024)
        raise ValidationError(
            f"File size ({file_size_mb:.2f} MB) exceeds maximum "
            f"of {max_size_mb:.2f} MB"
        )
