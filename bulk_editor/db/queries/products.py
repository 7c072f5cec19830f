"""
Product-related GraphQL queries.

This module contains the catalog reads used by the bulk editor:
- Paginated product listing with status/tag filters
- Batch lookup of products by id for previews
"""

# =============================================
# PRODUCT QUERIES
# =============================================

# Paginated listing; variants are capped at 25 per product
PRODUCTS_LISTING_QUERY = """
query ProductListing(
  $query: String
  $first: Int
  $last: Int
  $after: String
  $before: String
) {
  shop {
    currencyCode
  }
  products(query: $query, first: $first, last: $last, after: $after, before: $before) {
    edges {
      cursor
      node {
        id
        title
        status
        tags
        variants(first: 25) {
          nodes {
            id
            title
            price
          }
        }
      }
    }
    pageInfo {
      hasNextPage
      hasPreviousPage
      startCursor
      endCursor
    }
  }
}
"""

# Batch lookup used to compute previews
PRODUCTS_BY_ID_QUERY = """
query ProductsById($ids: [ID!]!) {
  shop {
    currencyCode
  }
  nodes(ids: $ids) {
    __typename
    ... on Product {
      id
      title
      status
      tags
      variants(first: 50) {
        nodes {
          id
          title
          price
        }
      }
    }
  }
}
"""
