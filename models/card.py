from __future__ import annotations

from extensions import db
from utils.time import utcnow


class Card(db.Model):
    __tablename__ = "cards"
    __table_args__ = (
        db.CheckConstraint("version >= 1", name="ck_cards_version_positive"),
        db.Index("ix_cards_user_updated", "user_id", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title   = db.Column(db.String(160), nullable=False)
    content = db.Column(db.Text, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1, server_default=db.text("1"))

    # Timestamps are managed explicitly: imports may carry their own values.
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    owner = db.relationship("User", back_populates="cards")
    tag_links = db.relationship(
        "CardTag",
        back_populates="card",
        cascade="all, delete-orphan",
    )
    images = db.relationship(
        "CardImage",
        back_populates="card",
        order_by="CardImage.position",
        cascade="all, delete-orphan",
    )

    @property
    def tag_labels(self) -> list[str]:
        return [link.tag.label for link in self.tag_links]

    @property
    def image_urls(self) -> list[str]:
        return [image.url for image in self.images]

    def __repr__(self):
        return f"<Card {self.id} {self.title!r} v{self.version}>"


class Tag(db.Model):
    __tablename__ = "tags"

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(40), unique=True, nullable=False, index=True)

    card_links = db.relationship("CardTag", back_populates="tag")

    def __repr__(self):
        return f"<Tag {self.label!r}>"


class CardTag(db.Model):
    __tablename__ = "card_tags"

    card_id = db.Column(db.String(64), db.ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True)
    tag_id = db.Column(db.Integer, db.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True, index=True)

    card = db.relationship("Card", back_populates="tag_links")
    tag = db.relationship("Tag", back_populates="card_links", lazy="joined")


class CardImage(db.Model):
    __tablename__ = "card_images"

    id = db.Column(db.Integer, primary_key=True)
    card_id = db.Column(
        db.String(64),
        db.ForeignKey("cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    url = db.Column(db.Text, nullable=False)

    card = db.relationship("Card", back_populates="images")
