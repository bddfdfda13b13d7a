"""Encryption, permissions and sanitization processors."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any

from .base import SinglePDFProcessor
from .engine import load_pdf_engine, save_pdf


@dataclass
class PermissionOptions:
    allow_printing: bool = True
    allow_copying: bool = False
    allow_modifying: bool = False
    allow_annotating: bool = True


def permission_flags(options: PermissionOptions) -> int:
    """PDF permission bit mask for the allow_* switches."""
    fitz = load_pdf_engine()
    flags = fitz.PDF_PERM_ACCESSIBILITY
    if options.allow_printing:
        flags |= fitz.PDF_PERM_PRINT | fitz.PDF_PERM_PRINT_HQ
    if options.allow_copying:
        flags |= fitz.PDF_PERM_COPY
    if options.allow_modifying:
        flags |= fitz.PDF_PERM_MODIFY | fitz.PDF_PERM_ASSEMBLE
    if options.allow_annotating:
        flags |= fitz.PDF_PERM_ANNOTATE | fitz.PDF_PERM_FORM
    return flags


def permission_summary(options: PermissionOptions) -> dict[str, bool]:
    return {
        "printing": options.allow_printing,
        "copying": options.allow_copying,
        "modifying": options.allow_modifying,
        "annotating": options.allow_annotating,
    }


def encrypt(doc, owner_password: str, user_password: str, permissions: int) -> bytes:
    """Serialize with AES-256 encryption. An empty owner password gets a random one."""
    fitz = load_pdf_engine()
    return save_pdf(
        doc,
        encryption=fitz.PDF_ENCRYPT_AES_256,
        owner_pw=owner_password or secrets.token_urlsafe(24),
        user_pw=user_password,
        permissions=permissions,
    )


# -----------------------------------------------------------------------------
# Encrypt / permissions
# -----------------------------------------------------------------------------


@dataclass
class EncryptOptions(PermissionOptions):
    """
    Empty user password: anyone can open the file, permissions still apply.
    Empty owner password: a random one is generated (and not returned).
    """

    user_password: str = ""
    owner_password: str = ""


class EncryptPDFProcessor(SinglePDFProcessor):
    kind = "encrypt-pdf"
    suffix = "_encrypted"
    options_class = EncryptOptions

    def validate_options(self, options: EncryptOptions) -> str | None:
        for label, value in (("User", options.user_password), ("Owner", options.owner_password)):
            if len(value) > 127:
                return f"{label} password must be at most 127 characters."
        return None

    def save(self, doc, options: EncryptOptions) -> bytes:
        return encrypt(doc, options.owner_password, options.user_password, permission_flags(options))

    async def transform(self, doc, options: EncryptOptions) -> dict[str, Any]:
        return {
            "encryption": "AES-256",
            "requiresPassword": bool(options.user_password),
            "ownerPasswordGenerated": not options.owner_password,
            "permissions": permission_summary(options),
        }


@dataclass
class ChangePermissionsOptions(PermissionOptions):
    password: str = ""


class ChangePermissionsProcessor(SinglePDFProcessor):
    """Replace the permission set; the output opens without a password."""

    kind = "change-permissions"
    suffix = "_permissions"
    options_class = ChangePermissionsOptions

    def password_for(self, options: ChangePermissionsOptions) -> str | None:
        return options.password or None

    def save(self, doc, options: ChangePermissionsOptions) -> bytes:
        return encrypt(doc, "", "", permission_flags(options))

    async def transform(self, doc, options: ChangePermissionsOptions) -> dict[str, Any]:
        return {"permissions": permission_summary(options)}


# -----------------------------------------------------------------------------
# Decrypt / remove restrictions
# -----------------------------------------------------------------------------


@dataclass
class DecryptOptions:
    password: str = ""


class DecryptPDFProcessor(SinglePDFProcessor):
    """
    Write an unencrypted copy.

    Inputs that need a password fail with PDF_ENCRYPTED when it is missing
    or wrong. Unencrypted inputs pass through rewritten.
    """

    kind = "decrypt-pdf"
    suffix = "_decrypted"
    options_class = DecryptOptions

    def password_for(self, options: DecryptOptions) -> str | None:
        return options.password or None

    def save(self, doc, options: DecryptOptions) -> bytes:
        fitz = load_pdf_engine()
        return save_pdf(doc, encryption=fitz.PDF_ENCRYPT_NONE)

    async def transform(self, doc, options: DecryptOptions) -> dict[str, Any]:
        # is_encrypted clears on authenticate; these two do not
        encrypted = doc.needs_pass or bool((doc.metadata or {}).get("encryption"))
        return {"wasEncrypted": bool(encrypted)}


class RemoveRestrictionsProcessor(DecryptPDFProcessor):
    """Drop owner-password restrictions (printing, copying, editing)."""

    kind = "remove-restrictions"
    suffix = "_unrestricted"


# -----------------------------------------------------------------------------
# Sanitize
# -----------------------------------------------------------------------------


@dataclass
class SanitizeOptions:
    remove_javascript: bool = True
    remove_attachments: bool = True
    remove_links: bool = True
    flatten_forms: bool = True
    remove_metadata: bool = True
    remove_annotations: bool = False


class SanitizePDFProcessor(SinglePDFProcessor):
    """Remove active and hidden content before sharing a document."""

    kind = "sanitize-pdf"
    suffix = "_sanitized"
    options_class = SanitizeOptions

    def save(self, doc, options: SanitizeOptions) -> bytes:
        return save_pdf(doc, garbage=4, clean=True)

    async def transform(self, doc, options: SanitizeOptions) -> dict[str, Any]:
        removed_annotations = 0
        if options.remove_annotations:
            async for page in self.iter_pages(doc, start=10, end=40):
                annot = page.first_annot
                while annot:
                    annot = page.delete_annot(annot)
                    removed_annotations += 1

        if options.flatten_forms and doc.is_form_pdf:
            self.update_progress(50, "Flattening form fields...")
            doc.bake(annots=False, widgets=True)

        await self.checkpoint()
        self.update_progress(70, "Removing hidden content...")
        doc.scrub(
            attached_files=options.remove_attachments,
            clean_pages=False,
            embedded_files=options.remove_attachments,
            hidden_text=False,
            javascript=options.remove_javascript,
            metadata=options.remove_metadata,
            redactions=False,
            remove_links=options.remove_links,
            reset_fields=False,
            reset_responses=False,
            thumbnails=True,
            xml_metadata=options.remove_metadata,
        )
        return {
            "removedAnnotations": removed_annotations,
            "options": {
                "javascript": options.remove_javascript,
                "attachments": options.remove_attachments,
                "links": options.remove_links,
                "forms": options.flatten_forms,
                "metadata": options.remove_metadata,
            },
        }
