from sqlalchemy import BigInteger, Integer

# Group ids are BIGINT on the hosted Postgres store. SQLite only autoincrements
# an INTEGER PRIMARY KEY, so tests and the dev database get the Integer variant.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
