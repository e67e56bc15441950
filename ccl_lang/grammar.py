CCL_GRAMMAR = r"""
    start: item*

    // --- Declarations ---
    ?item: fn_def
         | struct_def
         | enum_def
         | const_def
         | contract_def

    contract_def: "contract" NAME "{" contract_meta* contract_item* "}"
    contract_meta: NAME ":" STRING ";"
    ?contract_item: fn_def
                  | struct_def
                  | enum_def
                  | const_def

    fn_def: "fn" NAME "(" params? ")" ret_type? block
    ret_type: "->" type_expr
    params: param ("," param)* ","?
    param: NAME ":" type_expr

    struct_def: "struct" NAME "{" (field_decl ("," field_decl)* ","?)? "}"
    field_decl: NAME ":" type_expr

    enum_def: "enum" NAME "{" (NAME ("," NAME)* ","?)? "}"

    const_def: "const" NAME ":" type_expr "=" expr ";"

    type_expr: NAME                          -> simple_type
             | NAME "<" type_expr ">"        -> generic_type

    // --- Statements ---
    block: "{" stmt* "}"

    ?stmt: "let" "mut"? NAME (":" type_expr)? "=" expr ";"   -> let_stmt
         | postfix "=" expr ";"                                -> assign_stmt
         | "return" expr? ";"                                  -> return_stmt
         | "if" expr block elif_clause* else_clause?           -> if_stmt
         | "while" expr block                                  -> while_stmt
         | "for" NAME "in" expr block                          -> for_stmt
         | "break" ";"                                         -> break_stmt
         | "continue" ";"                                      -> continue_stmt
         | expr ";"                                            -> expr_stmt

    elif_clause: "else" "if" expr block
    else_clause: "else" block

    // --- Expressions ---
    ?expr: or_expr

    ?or_expr: and_expr
            | or_expr "||" and_expr      -> or_op

    ?and_expr: equality
             | and_expr "&&" equality    -> and_op

    ?equality: comparison
             | equality "==" comparison  -> eq
             | equality "!=" comparison  -> ne

    ?comparison: sum
               | comparison "<" sum      -> lt
               | comparison ">" sum      -> gt
               | comparison "<=" sum     -> le
               | comparison ">=" sum     -> ge

    ?sum: product
        | sum "+" product                -> add
        | sum "-" product                -> sub
        | sum "++" product               -> concat

    ?product: unary
            | product "*" unary          -> mul
            | product "/" unary          -> div
            | product "%" unary          -> mod

    ?unary: postfix
          | "-" unary                    -> neg
          | "!" unary                    -> not_op

    ?postfix: atom
            | postfix "." NAME "(" args? ")"   -> method_call
            | postfix "." NAME                 -> field_access
            | postfix "[" expr "]"             -> index

    args: expr ("," expr)*

    ?atom: INT                                           -> int_lit
         | STRING                                        -> string_lit
         | "true"                                        -> true_lit
         | "false"                                       -> false_lit
         | NAME "::" NAME                                -> enum_value
         | NAME "(" args? ")"                            -> call
         | NAME                                          -> var
         | "[" args? "]"                                 -> array_lit
         | "new" NAME "{" (field_init ("," field_init)* ","?)? "}" -> record_lit
         | "Some" "(" expr ")"                           -> some_expr
         | "None"                                        -> none_expr
         | "Ok" "(" expr ")"                             -> ok_expr
         | "Err" "(" expr ")"                            -> err_expr
         | "match" expr "{" match_arm ("," match_arm)* ","? "}" -> match_expr
         | "(" expr ")"

    field_init: NAME ":" expr

    match_arm: pattern "=>" arm_body
    ?arm_body: expr
             | "{" stmt* expr? "}"                       -> arm_block

    ?pattern: INT                          -> pat_int
            | "-" INT                      -> pat_neg_int
            | "true"                       -> pat_true
            | "false"                      -> pat_false
            | STRING                       -> pat_string
            | WILD                         -> pat_wild
            | NAME "::" NAME               -> pat_enum
            | NAME                         -> pat_bind
            | "Some" "(" binder ")"        -> pat_some
            | "None"                       -> pat_none
            | "Ok" "(" binder ")"          -> pat_ok
            | "Err" "(" binder ")"         -> pat_err

    binder: NAME | WILD

    WILD: "_"
    NAME: /[a-zA-Z_][a-zA-Z0-9_]*/
    INT: /\d+/
    STRING: /"(\\.|[^"\\\n])*"/

    %import common.WS
    %ignore WS
    %ignore /\/\/[^\n]*/
    %ignore /\/\*(.|\n)*?\*\//
"""
