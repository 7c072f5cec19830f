"""
Bulk operation GraphQL queries and mutations.

This module contains bulk mutation management:
- Mutation templates executed once per line of the staged JSONL file
- Staged upload handshake
- Bulk mutation submission
- Bulk operation status and monitoring
"""

# =============================================
# MUTATION TEMPLATES (one execution per JSONL line)
# =============================================

# Line variables: {"productId": ..., "variants": [{"id": ..., "price": ...}]}
PRODUCT_VARIANTS_BULK_UPDATE_MUTATION = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    product {
      id
    }
    productVariants {
      id
      price
    }
    userErrors {
      field
      message
    }
  }
}
"""

# Line variables: {"input": {"id": ..., "tags": [...]}}
PRODUCT_UPDATE_TAGS_MUTATION = """
mutation productUpdate($input: ProductInput!) {
  productUpdate(input: $input) {
    product {
      id
      tags
    }
    userErrors {
      field
      message
    }
  }
}
"""

# =============================================
# BULK OPERATION LIFECYCLE
# =============================================

STAGED_UPLOADS_CREATE_MUTATION = """
mutation StagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

BULK_OPERATION_RUN_MUTATION = """
mutation BulkOperationRunMutation($mutation: String!, $stagedUploadPath: String!) {
  bulkOperationRunMutation(mutation: $mutation, stagedUploadPath: $stagedUploadPath) {
    bulkOperation {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

# Bulk operation status query
BULK_OPERATION_STATUS_QUERY = """
query GetBulkOperationStatus($id: ID!) {
  node(id: $id) {
    ... on BulkOperation {
      id
      status
      errorCode
      createdAt
      completedAt
      objectCount
      fileSize
      url
      partialDataUrl
      type
    }
  }
}
"""

# Current bulk mutation for the shop
CURRENT_BULK_OPERATION_QUERY = """
query GetCurrentBulkOperation {
  currentBulkOperation(type: MUTATION) {
    id
    status
    errorCode
    createdAt
    completedAt
    objectCount
    fileSize
    url
    partialDataUrl
    type
  }
}
"""
