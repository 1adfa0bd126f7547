# app.services.shopify.queries
"""GraphQL documents for the Shopify Admin API resources we sync."""

PRODUCT_FIELDS = """
  id
  legacyResourceId
  handle
  title
  descriptionHtml
  vendor
  productType
  status
  tags
  createdAt
  updatedAt
  images(first: 20) { nodes { id url altText width height } }
  variants(first: 50) { nodes { id legacyResourceId title sku price inventoryQuantity } }
"""

COLLECTION_FIELDS = """
  id
  legacyResourceId
  handle
  title
  descriptionHtml
  updatedAt
  productsCount { count }
"""

USER_ERRORS = "userErrors { field message }"

GET_PRODUCT = f"""
query getProduct($id: ID!) {{
  product(id: $id) {{
    {PRODUCT_FIELDS}
  }}
}}
"""

GET_PRODUCTS_COUNT = """
query getProductsCount {
  productsCount { count }
}
"""

CREATE_PRODUCT = f"""
mutation productCreate($input: ProductInput!) {{
  productCreate(input: $input) {{
    product {{
      {PRODUCT_FIELDS}
    }}
    {USER_ERRORS}
  }}
}}
"""

UPDATE_PRODUCT = f"""
mutation productUpdate($input: ProductInput!) {{
  productUpdate(input: $input) {{
    product {{
      {PRODUCT_FIELDS}
    }}
    {USER_ERRORS}
  }}
}}
"""

DELETE_PRODUCT = f"""
mutation productDelete($input: ProductDeleteInput!) {{
  productDelete(input: $input) {{
    deletedProductId
    {USER_ERRORS}
  }}
}}
"""

GET_COLLECTION = f"""
query getCollection($id: ID!) {{
  collection(id: $id) {{
    {COLLECTION_FIELDS}
  }}
}}
"""

CREATE_COLLECTION = f"""
mutation collectionCreate($input: CollectionInput!) {{
  collectionCreate(input: $input) {{
    collection {{
      {COLLECTION_FIELDS}
    }}
    {USER_ERRORS}
  }}
}}
"""

UPDATE_COLLECTION = f"""
mutation collectionUpdate($input: CollectionInput!) {{
  collectionUpdate(input: $input) {{
    collection {{
      {COLLECTION_FIELDS}
    }}
    {USER_ERRORS}
  }}
}}
"""

DELETE_COLLECTION = f"""
mutation collectionDelete($input: CollectionDeleteInput!) {{
  collectionDelete(input: $input) {{
    deletedCollectionId
    {USER_ERRORS}
  }}
}}
"""
