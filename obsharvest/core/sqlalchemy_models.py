"""
..currentmodule:: obsharvest.core.sqlalchemy_models

:platform: Unix, Mac
:synopsis: SQLAlchemy models for harvest bookkeeping

.. contents:: Contents
    :local:
    :backlinks: top

"""
from typing import Any

from sqlalchemy import Column, Integer, String, ForeignKey, JSON, UniqueConstraint, Index, Table
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import Text
from sqlalchemy.orm import relationship, sessionmaker, declarative_base

Base: Any = declarative_base()
"""The base class for all SQLAlchemy models"""

sensor_data = Table(
    'sensor_data', Base.metadata,
    Column('sensor_id', Integer, ForeignKey('sensor.id', ondelete='CASCADE'), primary_key=True),
    Column('data_id', Integer, ForeignKey('data.id', ondelete='CASCADE'), primary_key=True),
)
"""Link between the sensors and the data they were generated from"""

service_sensor = Table(
    'service_sensor', Base.metadata,
    Column('service_id', Integer, ForeignKey('service.id', ondelete='CASCADE'), primary_key=True),
    Column('sensor_id', Integer, ForeignKey('sensor.id', ondelete='CASCADE'), primary_key=True),
)
"""Link between the services and the sensors they publish"""


class DataSource(Base):
    """
    A registered file or folder location

    Fields:
        - *id:* autoincrement integer, primary key
        - *url:* string, unique location of the files (path or URL)
        - *store_kind:* string, kind of store reading the files
        - *format:* string, MIME type of the files
        - *read_mode:* string, LOCAL or REMOTE
        - *username:* string, remote user
        - *pwd:* string, remote password
        - *analysis_state:* string, PENDING or COMPLETED
    """
    __tablename__ = 'datasource'
    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, unique=True, nullable=False)
    store_kind = Column(String(50), nullable=False)
    format = Column(String(100), nullable=True)
    read_mode = Column(String(10), nullable=False)
    username = Column(String(100), nullable=True)
    pwd = Column(String(100), nullable=True)
    analysis_state = Column(String(20), nullable=True)

    selected_paths = relationship('DataSourceSelectedPath', back_populates='datasource',
                                  cascade='all, delete-orphan')

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.url

    def __repr__(self):
        return '<DataSource %r>' % self.url


class DataSourceSelectedPath(Base):
    """
    A file of a datasource selected for integration

    Fields:
        - *datasource_id:* integer, foreign key to the datasource
        - *path:* string, path of the file
        - *status:* string, see :class:`obsharvest.core.schema.enum.PathStatusEnum`
        - *provider_id:* integer, the provider the file was integrated as
    """
    __tablename__ = 'datasource_selected_path'
    id = Column(Integer, primary_key=True, autoincrement=True)
    datasource_id = Column(Integer, ForeignKey('datasource.id', ondelete='CASCADE'), nullable=False)
    path = Column(Text, nullable=False)
    status = Column(String(20), nullable=False)
    provider_id = Column(Integer, nullable=True)
    datasource = relationship('DataSource', back_populates='selected_paths')

    __table_args__ = (
        UniqueConstraint('datasource_id', 'path', name='_datasource_path_uc'),
        Index('idx_datasource_path', 'datasource_id', 'path'),
    )

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.path

    def __repr__(self):
        return '<DataSourceSelectedPath %r %s>' % (self.path, self.status)


class Provider(Base):
    """
    A file opened through a store

    Fields:
        - *identifier:* string, unique
        - *store_kind:* string
        - *path:* string, the file path
        - *configuration:* JSON, the string-keyed configuration map of the store
        - *datasource_id:* integer, the datasource the file comes from
    """
    __tablename__ = 'provider'
    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String(255), unique=True, nullable=False)
    store_kind = Column(String(50), nullable=False)
    path = Column(Text, nullable=False)
    configuration = Column(JSON, nullable=False)
    datasource_id = Column(Integer, ForeignKey('datasource.id', ondelete='SET NULL'), nullable=True)

    data = relationship('Data', back_populates='provider', cascade='all, delete-orphan')

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.identifier

    def __repr__(self):
        return '<Provider %r>' % self.identifier


class Dataset(Base):
    """
    A group of data

    Fields:
        - *identifier:* string, unique
    """
    __tablename__ = 'dataset'
    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String(255), unique=True, nullable=False)

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.identifier


class Data(Base):
    """
    A resource of a provider

    Fields:
        - *name:* string
        - *provider_id:* integer, foreign key to the provider
        - *dataset_id:* integer, foreign key to the dataset
    """
    __tablename__ = 'data'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    provider_id = Column(Integer, ForeignKey('provider.id', ondelete='CASCADE'), nullable=False)
    dataset_id = Column(Integer, ForeignKey('dataset.id', ondelete='SET NULL'), nullable=True)
    provider = relationship('Provider', back_populates='data')
    dataset = relationship('Dataset')
    sensors = relationship('Sensor', secondary=sensor_data, back_populates='data')

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.name

    def __repr__(self):
        return '<Data %r>' % self.name


class Sensor(Base):
    """
    A sensor identity generated from a procedure tree

    Fields:
        - *identifier:* string, unique, the procedure identifier
        - *type:* string, e.g. Component
        - *parent_id:* integer, the parent sensor
    """
    __tablename__ = 'sensor'
    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String(255), unique=True, nullable=False)
    type = Column(String(50), nullable=False)
    parent_id = Column(Integer, ForeignKey('sensor.id', ondelete='SET NULL'), nullable=True)

    children = relationship('Sensor')
    data = relationship('Data', secondary=sensor_data, back_populates='sensors')
    services = relationship('Service', secondary=service_sensor, back_populates='sensors')

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.identifier

    def __repr__(self):
        return '<Sensor %r>' % self.identifier


class Service(Base):
    """
    A target sensor service

    Fields:
        - *identifier:* string, unique
        - *type:* string, e.g. sos, sts
        - *host*, *database*, *schema:* the backing store identity of the service
    """
    __tablename__ = 'service'
    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String(255), unique=True, nullable=False)
    type = Column(String(20), nullable=False)
    host = Column(String(255), nullable=True)
    database = Column(String(255), nullable=True)
    schema = Column(String(255), nullable=True)

    sensors = relationship('Sensor', secondary=service_sensor, back_populates='services')

    def __str__(self):
        return self.__unicode__()

    def __unicode__(self):
        return self.identifier

    def __repr__(self):
        return '<Service %r>' % self.identifier


def _create_engine(url: str):
    """An in memory SQLite database keeps one connection for all threads"""
    if url in ('sqlite://', 'sqlite:///:memory:'):
        return create_engine(url, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(url)


def create_session_factory(url: str = 'sqlite://'):
    """
    Create the tables of a database and the session factory bound to it.

    :param url: the database URL
    :return: the session factory
    """
    db_engine = _create_engine(url)
    Base.metadata.create_all(db_engine)
    return sessionmaker(bind=db_engine, expire_on_commit=False)


def clear_database():
    """
    Clear the database
    """
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)


# Database setup in memory
engine = _create_engine('sqlite://')
Base.metadata.create_all(engine)
Session = sessionmaker(bind=engine, expire_on_commit=False)
