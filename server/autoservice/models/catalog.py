"""Service types, products and the line items that tie them to a service record."""

from autoservice.models.base import Base, TimestampMixin
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship


class ServiceType(Base, TimestampMixin):
    """A kind of work the shop performs (oil change, tire rotation, ...)."""

    __tablename__ = "service_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<ServiceType(id={self.id}, name='{self.name}')>"


class Product(Base, TimestampMixin):
    """A stocked part or product that can be used during a service."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"


class ServiceRecordService(Base):
    """Service type tag on a service record."""

    __tablename__ = "service_record_services"

    id = Column(Integer, primary_key=True)
    service_record_id = Column(
        Uuid, ForeignKey("service_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_type_id = Column(Integer, ForeignKey("service_types.id"), nullable=False)

    service_record = relationship("ServiceRecord", back_populates="services")
    service_type = relationship("ServiceType", lazy="joined")


class ServiceRecordProduct(Base):
    """Product used on a service record, priced at the time of the visit."""

    __tablename__ = "service_record_products"

    id = Column(Integer, primary_key=True)
    service_record_id = Column(
        Uuid, ForeignKey("service_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price_at_time = Column(Numeric(10, 2), nullable=False)

    service_record = relationship("ServiceRecord", back_populates="products")
    product = relationship("Product", lazy="joined")


class ServiceImage(Base):
    """Photo attached to a service record."""

    __tablename__ = "service_images"

    id = Column(Integer, primary_key=True)
    service_record_id = Column(
        Uuid, ForeignKey("service_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url = Column(Text, nullable=False)
    image_date = Column(DateTime(timezone=True))
    description = Column(Text)

    service_record = relationship("ServiceRecord", back_populates="images")
