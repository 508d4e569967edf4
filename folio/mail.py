"""Ingest PDF attachments from email messages.

Uses imap-tools' MailMessage to parse raw RFC 822 bytes, the same message
type the IMAP client hands out, so messages fetched from a mailbox and
messages read from disk go through one path.
"""

import logging

from imap_tools import MailMessage

from folio.db.store import Store, Transaction
from folio.documents import create_document
from folio.registry import store_files
from folio.schemas.tags import TaggingConfig, TaggingContext
from folio.tags import auto_tag

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
MAIL_ORIGIN = "mail"


def _is_pdf(content_type: str, filename: str) -> bool:
    if content_type.lower() == PDF_CONTENT_TYPE:
        return True
    return content_type.lower() == "application/octet-stream" and filename.lower().endswith(".pdf")


def _as_message(message: bytes | MailMessage) -> MailMessage:
    if isinstance(message, MailMessage):
        return message
    return MailMessage.from_bytes(message)


def mime_message_to_files(message: bytes | MailMessage) -> list[dict]:
    """Extract the PDF attachments of a message.

    Returns:
        One ``{"name", "data", "content_type"}`` dict per PDF part.
    """
    msg = _as_message(message)
    files = [
        {
            "name": attachment.filename or None,
            "data": attachment.payload,
            "content_type": PDF_CONTENT_TYPE,
        }
        for attachment in msg.attachments
        if _is_pdf(attachment.content_type, attachment.filename or "")
    ]
    logger.debug("Message %r: %d PDF attachment(s)", msg.subject, len(files))
    return files


def ingest_message(
    db: Store | Transaction,
    message: bytes | MailMessage,
    tagging: TaggingConfig,
) -> list[int]:
    """Store a message's PDFs and create one document per PDF.

    Each document is linked to its file, so its pages appear once the
    file is processed, and is auto-tagged with the sender and recipient
    as configured.

    Returns:
        Ids of the created documents.
    """
    msg = _as_message(message)
    files = mime_message_to_files(msg)
    if not files:
        logger.info("Message %r has no PDF attachments", msg.subject)
        return []

    context = TaggingContext(
        origin=MAIL_ORIGIN,
        mail_from=msg.from_ or None,
        mail_to=msg.to[0] if msg.to else None,
    )

    document_ids: list[int] = []
    with db.transaction() as tx:
        file_ids = store_files(tx, files, {"origin": MAIL_ORIGIN})
        for file_id, file in zip(file_ids, files):
            document_id = create_document(tx, title=file["name"] or msg.subject, file=file_id)
            auto_tag(tx, document_id, tagging, context)
            document_ids.append(document_id)

    logger.info(
        "Ingested message %r from %s: %d document(s)",
        msg.subject,
        context.mail_from,
        len(document_ids),
    )
    return document_ids
