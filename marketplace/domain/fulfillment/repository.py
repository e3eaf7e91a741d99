"""Review repository - Database operations for reviews"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Review


class ReviewRepository:
    @staticmethod
    def get_by_booking(db: Session, booking_id: str) -> Optional[Review]:
        return db.query(Review).filter(Review.booking_id == booking_id).first()

    @staticmethod
    def create_review(db: Session, **review_data) -> Review:
        review = Review(**review_data)
        db.add(review)
        db.commit()
        db.refresh(review)
        return review

    @staticmethod
    def get_worker_reviews(db: Session, worker_id: str) -> list[Review]:
        return (
            db.query(Review)
            .filter(Review.worker_id == worker_id)
            .order_by(Review.created_at.desc())
            .all()
        )
