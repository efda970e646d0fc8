from __future__ import annotations

# JSON Schema for net descriptions (the subset of Caffe's NetParameter we read).

NET_JSON_SCHEMA: dict = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Caffe net description",
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "input": {"$ref": "#/definitions/names"},
        "input_dim": {
            "type": "array",
            "items": {"type": "integer", "minimum": 1},
        },
        "input_shape": {
            "type": "array",
            "items": {"$ref": "#/definitions/blob_shape"},
        },
        "layer": {
            "type": "array",
            "items": {"$ref": "#/definitions/layer"},
        },
    },
    "additionalProperties": True,
    "definitions": {
        "names": {
            "oneOf": [
                {"type": "string"},
                {"type": "array", "items": {"type": "string"}},
            ]
        },
        "int_or_list": {
            "oneOf": [
                {"type": "integer", "minimum": 0},
                {"type": "array", "items": {"type": "integer", "minimum": 0}},
            ]
        },
        "blob_shape": {
            "type": "object",
            "properties": {
                "dim": {"type": "array", "items": {"type": "integer"}},
            },
            "required": ["dim"],
        },
        "blob": {
            "type": "object",
            "properties": {
                "shape": {"type": "array", "items": {"type": "integer", "minimum": 0}},
                "data": {"type": "array", "items": {"type": "number"}},
            },
            "required": ["shape"],
        },
        "layer": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "type": {"type": "string"},
                "bottom": {"$ref": "#/definitions/names"},
                "top": {"$ref": "#/definitions/names"},
                "blobs": {"type": "array", "items": {"$ref": "#/definitions/blob"}},
                "input_param": {
                    "type": "object",
                    "properties": {
                        "shape": {
                            "type": "array",
                            "items": {"$ref": "#/definitions/blob_shape"},
                        },
                    },
                },
                "convolution_param": {
                    "type": "object",
                    "properties": {
                        "num_output": {"type": "integer", "minimum": 1},
                        "bias_term": {"type": "boolean"},
                        "kernel_size": {"$ref": "#/definitions/int_or_list"},
                        "pad": {"$ref": "#/definitions/int_or_list"},
                        "stride": {"$ref": "#/definitions/int_or_list"},
                        "dilation": {"$ref": "#/definitions/int_or_list"},
                        "kernel_h": {"type": "integer", "minimum": 1},
                        "kernel_w": {"type": "integer", "minimum": 1},
                        "pad_h": {"type": "integer", "minimum": 0},
                        "pad_w": {"type": "integer", "minimum": 0},
                        "stride_h": {"type": "integer", "minimum": 1},
                        "stride_w": {"type": "integer", "minimum": 1},
                        "group": {"type": "integer", "minimum": 0},
                    },
                },
                "pooling_param": {
                    "type": "object",
                    "properties": {
                        "pool": {"enum": ["MAX", "AVE", "STOCHASTIC"]},
                        "kernel_size": {"type": "integer", "minimum": 1},
                        "kernel_h": {"type": "integer", "minimum": 1},
                        "kernel_w": {"type": "integer", "minimum": 1},
                        "stride": {"type": "integer", "minimum": 1},
                        "stride_h": {"type": "integer", "minimum": 1},
                        "stride_w": {"type": "integer", "minimum": 1},
                        "pad": {"type": "integer", "minimum": 0},
                        "pad_h": {"type": "integer", "minimum": 0},
                        "pad_w": {"type": "integer", "minimum": 0},
                        "global_pooling": {"type": "boolean"},
                    },
                },
                "batch_norm_param": {
                    "type": "object",
                    "properties": {
                        "use_global_stats": {"type": "boolean"},
                        "moving_average_fraction": {"type": "number"},
                        "eps": {"type": "number", "exclusiveMinimum": 0},
                    },
                },
                "inner_product_param": {
                    "type": "object",
                    "properties": {
                        "num_output": {"type": "integer", "minimum": 1},
                        "bias_term": {"type": "boolean"},
                        "axis": {"type": "integer"},
                    },
                    "required": ["num_output"],
                },
                "eltwise_param": {
                    "type": "object",
                    "properties": {
                        "operation": {"enum": ["PROD", "SUM", "MAX"]},
                        "coeff": {"type": "array", "items": {"type": "number"}},
                    },
                },
                "concat_param": {
                    "type": "object",
                    "properties": {"axis": {"type": "integer", "minimum": 1}},
                },
                "scale_param": {
                    "type": "object",
                    "properties": {
                        "axis": {"type": "integer", "minimum": 1},
                        "num_axes": {"type": "integer", "minimum": 1},
                        "bias_term": {"type": "boolean"},
                    },
                },
                "dropout_param": {
                    "type": "object",
                    "properties": {
                        "dropout_ratio": {"type": "number", "minimum": 0, "maximum": 1},
                    },
                },
                "relu_param": {
                    "type": "object",
                    "properties": {"negative_slope": {"type": "number"}},
                },
            },
            "required": ["name", "type"],
            "additionalProperties": True,
        },
    },
}
